"""
Identity provider: accounts, credentials and bearer tokens.

MongoIdentityProvider keeps accounts in the `users` collection with argon2id
password hashes, reads customer bearer JWTs (PyJWT, HS256 or RS256 depending
on the configured keys) and mints the short-lived admin session token issued
after a successful admin OTP.

Only tokens whose ``role`` claim is ``authenticated`` identify a customer;
anything else is treated as anonymous.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol

import jwt

from config import JWTSettings
from errors import ConfigurationError
from repositories.user_repository import UserRepository
from shared.crypto import hash_password, verify_password
from shared.datetime_utils import utcnow
from shared.logging import get_logger

log = get_logger(__name__)

AUTHENTICATED_ROLE = "authenticated"
ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class IdentityUser:
    id: str
    email: str


@dataclass(frozen=True)
class BearerClaims:
    subject: str
    role: str
    email: Optional[str] = None


class IdentityProvider(Protocol):
    async def get_user_by_email(self, email: str) -> Optional[IdentityUser]: ...

    async def set_password(self, user_id: str, new_password: str) -> bool: ...

    async def authenticate(self, email: str, password: str) -> Optional[IdentityUser]: ...

    def bearer_token_payload(self, token: str) -> Optional[BearerClaims]: ...

    def issue_admin_session(self, email: str, ttl_seconds: int) -> tuple[str, datetime]: ...


def _normalize_key(raw: str) -> str:
    # Support keys provided via env with literal \n sequences
    return raw.replace("\\n", "\n")


class MongoIdentityProvider:
    def __init__(self, users: UserRepository, settings: JWTSettings) -> None:
        self._users = users
        self._settings = settings

    # ── Accounts ─────────────────────────────────────────────────────────────

    async def get_user_by_email(self, email: str) -> Optional[IdentityUser]:
        user = await self._users.find_by_email(email)
        if user is None or user.id is None:
            return None
        return IdentityUser(id=str(user.id), email=user.email)

    async def set_password(self, user_id: str, new_password: str) -> bool:
        updated = await self._users.update_password_hash(user_id, hash_password(new_password))
        if updated:
            log.info("password_updated", user_id=user_id)
        else:
            log.warning("password_update_no_match", user_id=user_id)
        return updated

    async def authenticate(self, email: str, password: str) -> Optional[IdentityUser]:
        user = await self._users.find_by_email(email)
        if user is None or not user.password_hash:
            return None
        if not verify_password(password, user.password_hash):
            return None
        return IdentityUser(id=str(user.id), email=user.email)

    # ── Tokens ───────────────────────────────────────────────────────────────

    def _algorithm(self) -> str:
        return "RS256" if self._settings.use_rs256 else "HS256"

    def _signing_key(self) -> str:
        if self._settings.use_rs256:
            return _normalize_key(self._settings.jwt_private_key)
        if not self._settings.jwt_secret:
            raise ConfigurationError("Missing JWT configuration")
        return self._settings.jwt_secret

    def _verification_key(self) -> str:
        if self._settings.use_rs256:
            return _normalize_key(self._settings.jwt_public_key)
        if not self._settings.jwt_secret:
            raise ConfigurationError("Missing JWT configuration")
        return self._settings.jwt_secret

    def bearer_token_payload(self, token: str) -> Optional[BearerClaims]:
        """Decode a customer bearer token.

        Returns:
            The subject and role when the token verifies and carries the
            ``authenticated`` role, otherwise None.
        """
        key = self._verification_key()
        audience = self._settings.jwt_audience or None
        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=[self._algorithm()],
                audience=audience,
                issuer=self._settings.jwt_issuer or None,
                options={"verify_aud": audience is not None},
            )
        except jwt.PyJWTError as exc:
            log.info("bearer_token_rejected", reason=type(exc).__name__)
            return None

        subject = claims.get("sub")
        role = claims.get("role")
        if role != AUTHENTICATED_ROLE or not isinstance(subject, str) or not subject:
            log.info("bearer_token_rejected", reason="not_authenticated_session")
            return None
        email = claims.get("email")
        return BearerClaims(
            subject=subject,
            role=role,
            email=email if isinstance(email, str) else None,
        )

    def issue_admin_session(self, email: str, ttl_seconds: int) -> tuple[str, datetime]:
        """Mint the admin session JWT returned after admin OTP verification."""
        now = utcnow()
        expires_at = now + timedelta(seconds=ttl_seconds)
        claims = {
            "sub": email,
            "role": ADMIN_ROLE,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
            "amr": ["otp"],  # Authentication Methods References
        }
        if self._settings.jwt_issuer:
            claims["iss"] = self._settings.jwt_issuer
        token = jwt.encode(claims, self._signing_key(), algorithm=self._algorithm())
        return token, expires_at
