"""
FastAPI dependency providers.

All injectable dependencies are defined here as plain async functions
used with FastAPI's Depends() system.

Services are built per request from the long-lived objects on app.state
(Mongo database, HTTP clients, email renderer). Building them late means a
missing secret (OTP pepper, admin email, database URI) surfaces as a 500
configuration error on the affected endpoint while /health keeps working.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from pymongo.asynchronous.database import AsyncDatabase

from config import AppSettings
from errors import AuthenticationError, ConfigurationError
from infrastructure.email.renderer import OtpEmailRenderer
from infrastructure.email.resend import ResendEmailProvider
from infrastructure.identity import MongoIdentityProvider
from infrastructure.sms.twilio import TwilioSmsProvider
from repositories.order_repository import OrderRepository
from repositories.otp_repository import MongoOtpRepository
from repositories.profile_repository import CustomerProfileRepository
from repositories.user_repository import UserRepository
from services.admin_login_service import AdminLoginService
from services.otp import RequestContext
from services.password_reset_service import PasswordResetService
from services.phone_verification_service import PhoneVerificationService
from services.return_otp_service import ReturnOtpService
from shared.ip_utils import get_client_ip, get_user_agent

# Collection names
ADMIN_LOGIN_OTPS = "admin-login-otps"
PHONE_VERIFICATION_OTPS = "phone-verification-otps"
RETURN_OTPS = "return-otps"
PASSWORD_RESET_OTPS = "password-reset-otps"
USERS = "users"
CUSTOMER_PROFILES = "customer-profiles"
ORDERS = "orders"


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


async def get_db(request: Request) -> AsyncDatabase:
    """Return the async MongoDB database from app.state."""
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise ConfigurationError("Missing database configuration")
    return db


def get_renderer(request: Request) -> OtpEmailRenderer:
    return request.app.state.email_renderer


def get_request_context(request: Request) -> RequestContext:
    return RequestContext(
        requester_ip=get_client_ip(request),
        requester_user_agent=get_user_agent(request),
    )


def _pepper(settings: AppSettings) -> str:
    if not settings.otp.otp_pepper:
        raise ConfigurationError("Missing OTP_PEPPER")
    return settings.otp.otp_pepper


# ── Collaborators ─────────────────────────────────────────────────────────────


async def get_identity_provider(
    db: AsyncDatabase = Depends(get_db),
    settings: AppSettings = Depends(get_settings),
) -> MongoIdentityProvider:
    return MongoIdentityProvider(UserRepository(db[USERS]), settings.jwt)


def get_email_provider(request: Request) -> ResendEmailProvider:
    settings: AppSettings = request.app.state.settings
    return ResendEmailProvider(settings.email, request.app.state.email_http)


def get_sms_provider(request: Request) -> TwilioSmsProvider:
    settings: AppSettings = request.app.state.settings
    return TwilioSmsProvider(settings.sms, request.app.state.sms_http)


# ── Auth ──────────────────────────────────────────────────────────────────────


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_user_id(
    request: Request,
    identity: MongoIdentityProvider = Depends(get_identity_provider),
) -> str:
    """Subject of the caller's customer session; 401 when absent or invalid."""
    token = _bearer_token(request)
    if token is None:
        raise AuthenticationError("Unauthorized")
    claims = identity.bearer_token_payload(token)
    if claims is None:
        raise AuthenticationError("Unauthorized")
    return claims.subject


# ── Services ──────────────────────────────────────────────────────────────────


async def get_admin_login_service(
    db: AsyncDatabase = Depends(get_db),
    settings: AppSettings = Depends(get_settings),
    identity: MongoIdentityProvider = Depends(get_identity_provider),
    email_provider: ResendEmailProvider = Depends(get_email_provider),
    renderer: OtpEmailRenderer = Depends(get_renderer),
) -> AdminLoginService:
    # The session key must exist before a code is issued or consumed
    if not settings.jwt.is_configured:
        raise ConfigurationError("Missing JWT configuration")
    return AdminLoginService(
        store=MongoOtpRepository(db[ADMIN_LOGIN_OTPS]),
        identity=identity,
        email_provider=email_provider,
        renderer=renderer,
        admin_settings=settings.admin,
        email_settings=settings.email,
        pepper=_pepper(settings),
    )


async def get_phone_verification_service(
    db: AsyncDatabase = Depends(get_db),
    settings: AppSettings = Depends(get_settings),
    sms_provider: TwilioSmsProvider = Depends(get_sms_provider),
) -> PhoneVerificationService:
    if not settings.sms.is_configured:
        raise ConfigurationError("Missing Twilio configuration")
    return PhoneVerificationService(
        store=MongoOtpRepository(db[PHONE_VERIFICATION_OTPS]),
        profiles=CustomerProfileRepository(db[CUSTOMER_PROFILES]),
        sms_provider=sms_provider,
        sms_settings=settings.sms,
        app_name=settings.app_name,
        pepper=_pepper(settings),
    )


async def get_return_otp_service(
    db: AsyncDatabase = Depends(get_db),
    settings: AppSettings = Depends(get_settings),
    email_provider: ResendEmailProvider = Depends(get_email_provider),
    renderer: OtpEmailRenderer = Depends(get_renderer),
) -> ReturnOtpService:
    return ReturnOtpService(
        store=MongoOtpRepository(db[RETURN_OTPS]),
        orders=OrderRepository(db[ORDERS]),
        email_provider=email_provider,
        renderer=renderer,
        email_settings=settings.email,
        pepper=_pepper(settings),
    )


async def get_password_reset_service(
    db: AsyncDatabase = Depends(get_db),
    settings: AppSettings = Depends(get_settings),
    identity: MongoIdentityProvider = Depends(get_identity_provider),
    email_provider: ResendEmailProvider = Depends(get_email_provider),
    renderer: OtpEmailRenderer = Depends(get_renderer),
) -> PasswordResetService:
    return PasswordResetService(
        store=MongoOtpRepository(db[PASSWORD_RESET_OTPS]),
        identity=identity,
        email_provider=email_provider,
        renderer=renderer,
        email_settings=settings.email,
        pepper=_pepper(settings),
        reveal_unknown_email=settings.otp.otp_reset_reveal_unknown_email,
    )


async def ensure_indexes(db: AsyncDatabase) -> None:
    """Create the indexes every collection relies on. Idempotent."""
    for name in (ADMIN_LOGIN_OTPS, PHONE_VERIFICATION_OTPS, RETURN_OTPS, PASSWORD_RESET_OTPS):
        await MongoOtpRepository(db[name]).ensure_indexes()
    await UserRepository(db[USERS]).ensure_indexes()
    await CustomerProfileRepository(db[CUSTOMER_PROFILES]).ensure_indexes()
