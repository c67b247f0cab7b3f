"""
PasswordResetService: two-stage OTP flow for customers who forgot a password.

    request  email                        → 6-digit code by email
    verify   email + otp                  → reset_token (valid 15 minutes)
    reset    email + reset_token + pwd    → password updated, record consumed

The reset token is returned exactly once in plaintext; only its salted hash
is stored on the OTP record. The record stays unconsumed between verify and
reset and is consumed only after the password write has been settled.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Callable, Optional

from config import EmailSettings
from errors import UpstreamError, ValidationError
from infrastructure.email.protocol import EmailProvider
from infrastructure.email.renderer import OtpEmailRenderer
from infrastructure.identity import IdentityProvider
from repositories.otp_repository import OtpStore
from schemas.dto.responses.otp import OtpActionResponse
from schemas.models.otp import OtpRecordDoc
from services.otp import OtpEngine, OtpPolicy, RequestContext
from shared.datetime_utils import to_iso, utcnow
from shared.generators import generate_otp_code
from shared.logging import get_logger
from shared.validators import as_text, is_numeric_otp, is_valid_email, normalize_email

log = get_logger(__name__)

RESET_TOKEN_MIN_LENGTH = 16
NEW_PASSWORD_MIN_LENGTH = 6
UNKNOWN_ACCOUNT_MESSAGE = "You didn't create any account from this email"

PASSWORD_RESET_POLICY = OtpPolicy(
    name="password_reset",
    ttl=timedelta(minutes=10),
    cooldown=timedelta(seconds=10),
    generate_secret=generate_otp_code,
    two_stage=True,
    token_ttl=timedelta(minutes=15),
)


class PasswordResetService:
    def __init__(
        self,
        store: OtpStore,
        identity: IdentityProvider,
        email_provider: EmailProvider,
        renderer: OtpEmailRenderer,
        email_settings: EmailSettings,
        pepper: str,
        reveal_unknown_email: bool = True,
        clock: Callable = utcnow,
    ) -> None:
        self._engine = OtpEngine(store, PASSWORD_RESET_POLICY, pepper, clock)
        self._identity = identity
        self._email = email_provider
        self._renderer = renderer
        self._from_address = email_settings.resend_from
        self._reveal_unknown_email = reveal_unknown_email

    @staticmethod
    def _email_or_raise(raw: Optional[str], message: str) -> str:
        email = normalize_email(raw)
        if not is_valid_email(email):
            raise ValidationError(message, field="email")
        return email

    async def request(
        self, email: Optional[str], context: Optional[RequestContext] = None
    ) -> OtpActionResponse:
        address = self._email_or_raise(email, "Invalid email")

        user = await self._identity.get_user_by_email(address)
        if user is None:
            log.info("password_reset_unknown_email", revealed=self._reveal_unknown_email)
            if self._reveal_unknown_email:
                return OtpActionResponse(ok=None, error=UNKNOWN_ACCOUNT_MESSAGE)
            return OtpActionResponse(ok=True)

        async def deliver(otp: str, record: OtpRecordDoc) -> None:
            subject, html = self._renderer.password_reset(otp, PASSWORD_RESET_POLICY.ttl_minutes)
            await self._email.send(
                from_address=self._from_address, to=[address], subject=subject, html=html
            )

        result = await self._engine.request(address, deliver, context)
        if result.throttled:
            return OtpActionResponse(ok=True, throttled=True)
        return OtpActionResponse(ok=True, expires_at=to_iso(result.expires_at))

    async def verify(self, email: Optional[str], otp: Optional[str]) -> OtpActionResponse:
        address = self._email_or_raise(email, "Invalid input")
        code = as_text(otp)
        if not is_numeric_otp(code):
            raise ValidationError("Invalid OTP", field="otp")

        result = await self._engine.verify(address, code)
        return OtpActionResponse(
            ok=True,
            reset_token=result.token,
            expires_at=to_iso(result.token_expires_at),
        )

    async def reset(
        self,
        email: Optional[str],
        reset_token: Optional[str],
        new_password: Optional[str],
    ) -> OtpActionResponse:
        """Redeem a reset token and set the new password.

        An account deleted between verify and reset still consumes the
        record and answers ``ok`` so the token cannot be replayed. A failed
        password write leaves the record unconsumed; the token stays usable
        until it expires.
        """
        address = self._email_or_raise(email, "Invalid input")
        token = as_text(reset_token)
        # Passwords keep surrounding whitespace
        password = new_password or ""
        if len(token) < RESET_TOKEN_MIN_LENGTH or len(password) < NEW_PASSWORD_MIN_LENGTH:
            raise ValidationError("Invalid input")

        record = await self._engine.redeem_token(address, token)

        user = await self._identity.get_user_by_email(address)
        if user is None:
            await self._engine.consume(record)
            log.info("password_reset_account_gone", record_id=str(record.id))
            return OtpActionResponse(ok=True)

        if not await self._identity.set_password(user.id, password):
            log.error("password_reset_update_failed", user_id=user.id)
            raise UpstreamError("Failed to update password")

        await self._engine.consume(record)
        log.info("password_reset_completed", user_id=user.id)
        return OtpActionResponse(ok=True)
