"""
Cryptographic helpers: secret hashing, constant-time comparison and
password hashing.

Uses argon2 for passwords (via argon2-cffi) and salted, peppered SHA-256 for
OTP codes and reset tokens.
"""

from __future__ import annotations

import hashlib

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

_password_hasher = PasswordHasher()


def hash_secret(secret: str, salt: str, pepper: str) -> str:
    """Return the hex SHA-256 digest of ``secret:salt:pepper``.

    The same mixing order must be used when issuing and verifying; it is an
    internal contract, not a wire format.

    Returns:
        64-character lowercase hex string.
    """
    return hashlib.sha256(f"{secret}:{salt}:{pepper}".encode("utf-8")).hexdigest()


def constant_time_equals(expected: str, actual: str) -> bool:
    """Compare two digests without exiting early on the first differing byte.

    Digests produced by :func:`hash_secret` always have the same length, so a
    length mismatch only happens for corrupt rows and is rejected outright.
    """
    left = expected.encode("utf-8")
    right = actual.encode("utf-8")
    if len(left) != len(right):
        return False

    diff = 0
    for x, y in zip(left, right):
        diff |= x ^ y
    return diff == 0


def hash_password(plain_password: str) -> str:
    """Hash *plain_password* with argon2id.

    Returns:
        Argon2 hash string (includes algorithm parameters and salt).
    """
    return _password_hasher.hash(plain_password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify *plain_password* against an argon2 *password_hash*.

    Returns:
        ``True`` if the password matches, ``False`` for a wrong password or
        an unparseable hash.
    """
    try:
        return _password_hasher.verify(password_hash, plain_password)
    except (VerificationError, InvalidHashError):
        return False
