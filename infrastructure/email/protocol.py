"""EmailProvider protocol: services depend on this, not the concrete implementation."""

from typing import Protocol, Sequence


class EmailProvider(Protocol):
    async def send(
        self, *, from_address: str, to: Sequence[str], subject: str, html: str
    ) -> None:
        """Send one HTML email; raises DeliveryError when the provider refuses it."""
        ...
