"""
Unit test configuration.

Patches dotenv so pydantic-settings never reads the project's real .env file
during unit tests. Tests control config exclusively through monkeypatch.setenv().

Also provides in-memory stand-ins for the OTP store, the delivery providers and
the identity provider, plus a controllable clock.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest
from bson import ObjectId

from errors import DeliveryError
from infrastructure.identity import IdentityUser
from schemas.models.otp import OtpRecordDoc
from shared.datetime_utils import ensure_utc

PEPPER = "unit-test-pepper"
T0 = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def disable_dotenv_loading(monkeypatch):
    """Prevent pydantic-settings from loading .env files in all unit tests."""
    import pydantic_settings.sources.providers.dotenv as ps_dotenv

    monkeypatch.setattr(ps_dotenv, "dotenv_values", lambda *a, **kw: {})


# ── Clock ─────────────────────────────────────────────────────────────────────


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# ── OTP store ─────────────────────────────────────────────────────────────────


class InMemoryOtpStore:
    """OtpStore keeping rows in a list, newest last."""

    def __init__(self) -> None:
        self.rows: list[OtpRecordDoc] = []

    def _newest(self, rows: list[OtpRecordDoc]) -> Optional[OtpRecordDoc]:
        if not rows:
            return None
        # Stable sort: insertion order breaks created_at ties
        ordered = sorted(
            enumerate(rows), key=lambda pair: (ensure_utc(pair[1].created_at), pair[0])
        )
        return ordered[-1][1].model_copy()

    async def find_latest_active(
        self,
        identity_key: str,
        *,
        live_at: Optional[datetime] = None,
        verified_only: bool = False,
    ) -> Optional[OtpRecordDoc]:
        rows = [
            r
            for r in self.rows
            if r.identity_key == identity_key
            and r.consumed_at is None
            and (live_at is None or ensure_utc(r.expires_at) > ensure_utc(live_at))
            and (not verified_only or r.verified_at is not None)
        ]
        return self._newest(rows)

    async def find_latest(self, identity_key: str) -> Optional[OtpRecordDoc]:
        return self._newest([r for r in self.rows if r.identity_key == identity_key])

    async def insert(self, record: OtpRecordDoc) -> ObjectId:
        stored = record.model_copy()
        stored.id = ObjectId()
        self.rows.append(stored)
        return stored.id

    async def patch(self, record_id: ObjectId, fields: dict[str, Any]) -> None:
        for row in self.rows:
            if row.id == record_id:
                for name, value in fields.items():
                    setattr(row, name, value)

    async def consume_active(self, identity_key: str, now: datetime) -> int:
        count = 0
        for row in self.rows:
            if row.identity_key == identity_key and row.consumed_at is None:
                row.consumed_at = now
                count += 1
        return count

    def active(self, identity_key: str) -> list[OtpRecordDoc]:
        return [r for r in self.rows if r.identity_key == identity_key and r.consumed_at is None]


# ── Delivery ──────────────────────────────────────────────────────────────────


class RecordingEmailProvider:
    def __init__(self, fail: bool = False) -> None:
        self.sent: list[dict] = []
        self.fail = fail

    async def send(self, *, from_address, to, subject, html) -> None:
        if self.fail:
            raise DeliveryError("Failed to send email")
        self.sent.append({"from": from_address, "to": list(to), "subject": subject, "html": html})

    @property
    def last_otp(self) -> str:
        return self.sent[-1]["html"]


class RecordingSmsProvider:
    def __init__(self, fail: bool = False) -> None:
        self.sent: list[dict] = []
        self.fail = fail

    async def send(self, *, from_number, to, body) -> None:
        if self.fail:
            raise DeliveryError("Failed to send OTP SMS")
        self.sent.append({"from": from_number, "to": to, "body": body})

    @property
    def last_otp(self) -> str:
        # "<app> OTP: 123456. Valid for ..."
        return self.sent[-1]["body"].split("OTP: ", 1)[1][:6]


class PlainRenderer:
    """Renderer whose HTML body is just the OTP, so tests can read it back."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict]] = []

    def admin_login(self, otp, minutes, logo_url=None):
        self.calls.append(("admin_login", {"minutes": minutes, "logo_url": logo_url}))
        return "admin login OTP", otp

    def password_reset(self, otp, minutes):
        self.calls.append(("password_reset", {"minutes": minutes}))
        return "password reset OTP", otp

    def return_request(self, otp, minutes, order_reference):
        self.calls.append(("return_request", {"minutes": minutes, "order_reference": order_reference}))
        return "return request OTP", otp


# ── Identity ──────────────────────────────────────────────────────────────────


class FakeIdentityProvider:
    def __init__(self, users: Optional[dict[str, str]] = None, set_password_ok: bool = True) -> None:
        # email → user id
        self.users = dict(users or {})
        self.passwords: dict[str, str] = {}
        self.set_password_ok = set_password_ok
        self.sessions: list[str] = []

    async def get_user_by_email(self, email: str) -> Optional[IdentityUser]:
        user_id = self.users.get(email)
        return IdentityUser(id=user_id, email=email) if user_id else None

    async def set_password(self, user_id: str, new_password: str) -> bool:
        if not self.set_password_ok:
            return False
        self.passwords[user_id] = new_password
        return True

    async def authenticate(self, email: str, password: str) -> Optional[IdentityUser]:
        user_id = self.users.get(email)
        if user_id and self.passwords.get(user_id) == password:
            return IdentityUser(id=user_id, email=email)
        return None

    def bearer_token_payload(self, token: str):
        return None

    def issue_admin_session(self, email: str, ttl_seconds: int) -> tuple[str, datetime]:
        self.sessions.append(email)
        return f"admin-token-for-{email}", T0 + timedelta(seconds=ttl_seconds)


# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store() -> InMemoryOtpStore:
    return InMemoryOtpStore()


@pytest.fixture
def email_provider() -> RecordingEmailProvider:
    return RecordingEmailProvider()


@pytest.fixture
def sms_provider() -> RecordingSmsProvider:
    return RecordingSmsProvider()


@pytest.fixture
def renderer() -> PlainRenderer:
    return PlainRenderer()


@pytest.fixture
def identity() -> FakeIdentityProvider:
    return FakeIdentityProvider(users={"shopper@example.com": "user-1"})


@pytest.fixture
def pepper() -> str:
    return PEPPER
