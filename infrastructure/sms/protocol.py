"""SmsProvider protocol: services depend on this, not the concrete implementation."""

from typing import Protocol


class SmsProvider(Protocol):
    async def send(self, *, from_number: str, to: str, body: str) -> None:
        """Send one SMS; raises DeliveryError when the provider refuses it."""
        ...
