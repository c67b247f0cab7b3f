"""
OTP record document model.

One document per issuance, in one collection per flow:
`admin-login-otps`, `phone-verification-otps`, `return-otps`,
`password-reset-otps`.

secret_hash stores SHA-256(secret:salt:pepper): the plain OTP is never stored.
consumed_at is None while the record is the identity's active OTP; it is set
on success, on attempt exhaustion and when a newer request supersedes it.
token_hash / token_salt only appear on password-reset rows after the OTP was
verified; expires_at then moves to the reset token's own deadline.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from schemas.models.base import MongoBaseModel
from shared.datetime_utils import ensure_utc


class OtpRecordDoc(MongoBaseModel):
    """Document model for the per-flow OTP collections."""

    identity_key: str
    secret_hash: str
    salt: str
    attempts: int = Field(default=0, ge=0)
    created_at: datetime
    expires_at: datetime
    verified_at: Optional[datetime] = None
    consumed_at: Optional[datetime] = None
    token_hash: Optional[str] = None
    token_salt: Optional[str] = None

    requester_ip: Optional[str] = None
    requester_user_agent: Optional[str] = None

    @property
    def is_consumed(self) -> bool:
        return self.consumed_at is not None

    @property
    def is_verified(self) -> bool:
        return self.verified_at is not None

    def is_expired(self, now: datetime) -> bool:
        return ensure_utc(self.expires_at) <= ensure_utc(now)
