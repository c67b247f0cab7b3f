"""Follow-up bearer token minting for two-stage flows (password reset)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from shared.crypto import hash_secret
from shared.generators import generate_salt, generate_secure_token


@dataclass(frozen=True)
class MintedToken:
    token: str
    token_hash: str
    token_salt: str
    expires_at: datetime


def mint_reset_token(
    pepper: str, ttl: timedelta, now: datetime, nbytes: int = 32
) -> MintedToken:
    """Draw a URL-safe token from *nbytes* random bytes and hash it for storage.

    The plaintext goes back to the caller exactly once; only token_hash and
    token_salt are persisted.
    """
    token = generate_secure_token(nbytes)
    salt = generate_salt()
    return MintedToken(
        token=token,
        token_hash=hash_secret(token, salt, pepper),
        token_salt=salt,
        expires_at=now + ttl,
    )
