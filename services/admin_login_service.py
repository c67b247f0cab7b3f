"""
AdminLoginService: OTP gate in front of the admin dashboard.

Only the configured ADMIN_OTP_EMAIL may ask for a code. The code is a
15-character mixed-class secret (see shared.generators) valid for one minute.
A correct code yields an explicit admin session token; nothing about the
login is kept as ambient state on the server.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Callable, Optional

from config import AdminSettings, EmailSettings
from errors import ConfigurationError, ValidationError
from infrastructure.email.protocol import EmailProvider
from infrastructure.email.renderer import OtpEmailRenderer
from infrastructure.identity import IdentityProvider
from repositories.otp_repository import OtpStore
from schemas.dto.responses.otp import AdminSession, OtpActionResponse
from schemas.models.otp import OtpRecordDoc
from services.otp import OtpEngine, OtpPolicy, RequestContext
from shared.datetime_utils import to_iso, utcnow
from shared.generators import generate_mixed_otp
from shared.logging import get_logger
from shared.validators import as_text, normalize_email

log = get_logger(__name__)

ADMIN_OTP_LENGTH = 15
ADMIN_OTP_MIN_LENGTH = 10
ADMIN_OTP_MAX_LENGTH = 128

ADMIN_LOGIN_POLICY = OtpPolicy(
    name="admin_login",
    ttl=timedelta(minutes=1),
    cooldown=timedelta(seconds=10),
    generate_secret=lambda: generate_mixed_otp(ADMIN_OTP_LENGTH),
)


class AdminLoginService:
    def __init__(
        self,
        store: OtpStore,
        identity: IdentityProvider,
        email_provider: EmailProvider,
        renderer: OtpEmailRenderer,
        admin_settings: AdminSettings,
        email_settings: EmailSettings,
        pepper: str,
        clock: Callable = utcnow,
    ) -> None:
        if not admin_settings.normalized_email:
            raise ConfigurationError("Missing ADMIN_OTP_EMAIL")
        self._engine = OtpEngine(store, ADMIN_LOGIN_POLICY, pepper, clock)
        self._identity = identity
        self._email = email_provider
        self._renderer = renderer
        self._admin = admin_settings
        self._from_address = email_settings.resend_from

    def _check_admin_email(self, email: Optional[str]) -> str:
        """The configured admin email; an omitted email means that one."""
        normalized = normalize_email(email)
        if not normalized:
            return self._admin.normalized_email
        if normalized != self._admin.normalized_email:
            raise ValidationError("Invalid admin email", field="email")
        return normalized

    async def request(
        self, email: Optional[str], context: Optional[RequestContext] = None
    ) -> OtpActionResponse:
        admin_email = self._check_admin_email(email)

        async def deliver(otp: str, record: OtpRecordDoc) -> None:
            subject, html = self._renderer.admin_login(
                otp,
                ADMIN_LOGIN_POLICY.ttl_minutes,
                logo_url=self._admin.admin_otp_logo_url or None,
            )
            await self._email.send(
                from_address=self._from_address,
                to=[admin_email],
                subject=subject,
                html=html,
            )

        result = await self._engine.request(admin_email, deliver, context)
        if result.throttled:
            return OtpActionResponse(ok=True, throttled=True)
        return OtpActionResponse(ok=True, expires_at=to_iso(result.expires_at))

    async def verify(self, email: Optional[str], otp: Optional[str]) -> OtpActionResponse:
        admin_email = self._check_admin_email(email)
        code = as_text(otp)
        if not ADMIN_OTP_MIN_LENGTH <= len(code) <= ADMIN_OTP_MAX_LENGTH:
            raise ValidationError("Invalid OTP", field="otp")

        await self._engine.verify(admin_email, code)

        token, expires_at = self._identity.issue_admin_session(
            admin_email, self._admin.admin_session_ttl_seconds
        )
        log.info("admin_session_issued", expires_at=to_iso(expires_at))
        return OtpActionResponse(
            ok=True,
            session=AdminSession(
                admin_token=token,
                email=admin_email,
                expires_at=to_iso(expires_at),
            ),
        )
