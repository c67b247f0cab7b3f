"""Resend implementation of EmailProvider.

POST https://api.resend.com/emails with a bearer API key; any 2xx means the
message was accepted.
"""

from typing import Sequence

import httpx

from config import EmailSettings
from errors import ConfigurationError, DeliveryError
from infrastructure.http_client import HttpClient
from shared.logging import get_logger

log = get_logger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"


class ResendEmailProvider:
    def __init__(self, settings: EmailSettings, http_client: HttpClient) -> None:
        self._settings = settings
        self._http = http_client

    async def send(
        self, *, from_address: str, to: Sequence[str], subject: str, html: str
    ) -> None:
        if not self._settings.resend_api_key:
            log.error("email_send_failed", reason="api_key_not_configured")
            raise ConfigurationError("Missing email configuration")

        payload = {
            "from": from_address,
            "to": list(to),
            "subject": subject,
            "html": html,
        }
        headers = {
            "Authorization": f"Bearer {self._settings.resend_api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = await self._http.post(_RESEND_API_URL, json=payload, headers=headers)
        except httpx.HTTPError as e:
            log.error(
                "email_send_error",
                recipients=len(payload["to"]),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise DeliveryError("Failed to send email") from e

        if not response.is_success:
            log.error(
                "email_send_failed",
                recipients=len(payload["to"]),
                status_code=response.status_code,
                response=response.text[:200],
            )
            raise DeliveryError("Failed to send email")

        log.info("email_sent_success", recipients=len(payload["to"]))
