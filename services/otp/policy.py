"""Per-flow OTP policy: secret shape, timing and attempt limits."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_TOKEN_TTL = timedelta(minutes=15)
DEFAULT_TOKEN_BYTES = 32


@dataclass(frozen=True)
class OtpPolicy:
    """How one flow issues and checks OTPs.

    name:            flow label used in logs ("admin_login", "phone", ...)
    ttl:             lifetime of an issued OTP
    cooldown:        minimum age of the active OTP before another is issued
    generate_secret: zero-argument callable returning a fresh plaintext OTP
    max_attempts:    failed verifications allowed before the OTP is consumed
    two_stage:       verification mints a follow-up reset token instead of
                     consuming the record
    token_ttl:       lifetime of that follow-up token
    """

    name: str
    ttl: timedelta
    cooldown: timedelta
    generate_secret: Callable[[], str]
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    two_stage: bool = False
    token_ttl: timedelta = DEFAULT_TOKEN_TTL
    token_bytes: int = DEFAULT_TOKEN_BYTES

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.ttl <= timedelta(0):
            raise ValueError("ttl must be positive")
        if self.cooldown < timedelta(0):
            raise ValueError("cooldown must not be negative")

    @property
    def ttl_minutes(self) -> int:
        return max(1, int(self.ttl.total_seconds() // 60))
