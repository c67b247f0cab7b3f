"""Twilio implementation of SmsProvider (Programmable Messaging REST API)."""

from urllib.parse import quote

import httpx

from config import SmsSettings
from errors import ConfigurationError, DeliveryError
from infrastructure.http_client import HttpClient
from shared.logging import get_logger

log = get_logger(__name__)

_TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


class TwilioSmsProvider:
    def __init__(self, settings: SmsSettings, http_client: HttpClient) -> None:
        self._settings = settings
        self._http = http_client

    async def send(self, *, from_number: str, to: str, body: str) -> None:
        if not self._settings.is_configured:
            log.error("sms_send_failed", reason="twilio_not_configured")
            raise ConfigurationError("Missing Twilio configuration")

        url = _TWILIO_MESSAGES_URL.format(sid=quote(self._settings.twilio_account_sid, safe=""))
        form = {"From": from_number, "To": to, "Body": body}

        try:
            response = await self._http.post(
                url,
                data=form,
                auth=(self._settings.twilio_account_sid, self._settings.twilio_auth_token),
            )
        except httpx.HTTPError as e:
            log.error("sms_send_error", error=str(e), error_type=type(e).__name__)
            raise DeliveryError("Failed to send OTP SMS") from e

        if not response.is_success:
            log.error(
                "sms_send_failed",
                status_code=response.status_code,
                response=response.text[:200],
            )
            raise DeliveryError("Failed to send OTP SMS")

        log.info("sms_sent_success", to_suffix=to[-4:])
