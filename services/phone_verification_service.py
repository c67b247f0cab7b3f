"""
PhoneVerificationService: SMS OTP proving a customer owns a mobile number.

Identity is ``<user_id>:<+91 number>``, so each (user, number) pair has its
own cooldown and attempt budget. Unlike the email flows, a request inside the
30 second cooldown is an error (429) rather than a soft "throttled" reply.

On request the number is written to the customer's profile (unverified) so
the profile screen can show what is pending; that write is best effort. On a
correct code the profile's phone and phone_verified_at are set.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Callable, Optional

from config import SmsSettings
from errors import RateLimitError, StoreError, ValidationError
from infrastructure.sms.protocol import SmsProvider
from repositories.otp_repository import OtpStore
from repositories.profile_repository import CustomerProfileRepository
from schemas.dto.responses.otp import OtpActionResponse
from schemas.models.otp import OtpRecordDoc
from services.otp import OtpEngine, OtpPolicy, RequestContext
from shared.datetime_utils import to_iso, utcnow
from shared.generators import generate_otp_code
from shared.logging import get_logger
from shared.validators import as_text, is_numeric_otp, normalize_indian_phone

log = get_logger(__name__)

PHONE_POLICY = OtpPolicy(
    name="phone",
    ttl=timedelta(minutes=10),
    cooldown=timedelta(seconds=30),
    generate_secret=generate_otp_code,
)


class PhoneVerificationService:
    def __init__(
        self,
        store: OtpStore,
        profiles: CustomerProfileRepository,
        sms_provider: SmsProvider,
        sms_settings: SmsSettings,
        app_name: str,
        pepper: str,
        clock: Callable = utcnow,
    ) -> None:
        self._engine = OtpEngine(store, PHONE_POLICY, pepper, clock)
        self._profiles = profiles
        self._sms = sms_provider
        self._sms_settings = sms_settings
        self._app_name = app_name

    @staticmethod
    def _phone(raw: Optional[str]) -> str:
        phone = normalize_indian_phone(raw)
        if phone is None:
            raise ValidationError(
                "Invalid phone. Only +91 Indian mobile numbers allowed.", field="phone"
            )
        return phone

    @staticmethod
    def identity_key(user_id: str, phone: str) -> str:
        return f"{user_id}:{phone}"

    def _sms_body(self, otp: str) -> str:
        return (
            f"{self._app_name} OTP: {otp}. Valid for {PHONE_POLICY.ttl_minutes} minutes. "
            "Do not share this code."
        )

    async def _remember_pending_phone(self, user_id: str, phone: str) -> None:
        try:
            await self._profiles.upsert_phone(user_id, phone)
        except StoreError:
            # The SMS still goes out; the profile catches up on verify.
            log.warning("profile_phone_upsert_skipped", user_id=user_id)

    async def request(
        self,
        user_id: str,
        phone: Optional[str],
        context: Optional[RequestContext] = None,
    ) -> OtpActionResponse:
        """Issue (or re-issue) a code for *phone*. ``resend`` is the same operation."""
        e164 = self._phone(phone)

        async def deliver(otp: str, record: OtpRecordDoc) -> None:
            await self._remember_pending_phone(user_id, e164)
            await self._sms.send(
                from_number=self._sms_settings.twilio_from_number,
                to=e164,
                body=self._sms_body(otp),
            )

        result = await self._engine.request(self.identity_key(user_id, e164), deliver, context)
        if result.throttled:
            raise RateLimitError("Please wait before requesting another OTP.")
        return OtpActionResponse(ok=True, expires_at=to_iso(result.expires_at))

    resend = request

    async def verify(
        self, user_id: str, phone: Optional[str], otp: Optional[str]
    ) -> OtpActionResponse:
        e164 = self._phone(phone)
        code = as_text(otp)
        if not is_numeric_otp(code):
            raise ValidationError("Invalid OTP", field="otp")

        result = await self._engine.verify(self.identity_key(user_id, e164), code)

        await self._profiles.mark_phone_verified(user_id, e164, result.verified_at)
        log.info("phone_verified", user_id=user_id, phone_suffix=e164[-4:])
        return OtpActionResponse(ok=True)
