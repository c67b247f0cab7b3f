"""
Random code and token generators: pure, side-effect-free functions.

Every generator draws from the ``secrets`` module (the OS CSPRNG); nothing in
here may use ``random``.
"""

from __future__ import annotations

import base64
import secrets
import string
from typing import MutableSequence, TypeVar

T = TypeVar("T")

UPPERCASE = string.ascii_uppercase
LOWERCASE = string.ascii_lowercase
DIGITS = string.digits
SYMBOLS = "!@#$%^&*()-_=+[]{};:,.?/|~"
EMOJIS = (
    "🔒", "🛡", "🔥", "✅", "🎯", "⚡", "🚀", "💎",
    "🌟", "🧩", "🧠", "🧱", "🪙", "🎉", "🕶",
)

# Each mixed OTP carries at least one character from every class
MIXED_OTP_CLASSES: tuple[tuple[str, ...], ...] = (
    tuple(UPPERCASE),
    tuple(LOWERCASE),
    tuple(DIGITS),
    tuple(SYMBOLS),
    EMOJIS,
)


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def secure_randbelow(upper: int) -> int:
    """Return an unbiased random integer in ``[0, upper)``.

    ``secrets.randbelow`` rejection-samples over whole bits, so the result
    carries no modulo bias.

    Raises:
        ValueError: if *upper* is not a positive integer.
    """
    if upper <= 0:
        raise ValueError("upper must be a positive integer")
    return secrets.randbelow(upper)


def shuffle_in_place(items: MutableSequence[T]) -> MutableSequence[T]:
    """Fisher–Yates shuffle driven by :func:`secure_randbelow`."""
    for i in range(len(items) - 1, 0, -1):
        j = secure_randbelow(i + 1)
        items[i], items[j] = items[j], items[i]
    return items


def generate_otp_code(length: int = 6) -> str:
    """Generate a cryptographically secure numeric OTP.

    Args:
        length: Number of digits (default 6).

    Returns:
        String of random decimal digits.
    """
    if length <= 0:
        raise ValueError("length must be a positive integer")
    return "".join(secrets.choice(DIGITS) for _ in range(length))


def generate_mixed_otp(length: int = 15) -> str:
    """Generate a mixed-alphabet OTP used for the admin login second factor.

    One character is drawn from each class (upper, lower, digit, symbol,
    emoji), the remaining slots are filled uniformly from the union of all
    classes, and the result is shuffled so the guaranteed characters do not
    sit at predictable positions.

    Args:
        length: Number of characters (not bytes); must be at least the number
            of character classes.

    Raises:
        ValueError: if *length* is smaller than the number of classes.
    """
    if length < len(MIXED_OTP_CLASSES):
        raise ValueError(
            f"length must be at least {len(MIXED_OTP_CLASSES)} to cover every character class"
        )

    chars = [pool[secure_randbelow(len(pool))] for pool in MIXED_OTP_CLASSES]

    union = [c for pool in MIXED_OTP_CLASSES for c in pool]
    while len(chars) < length:
        chars.append(union[secure_randbelow(len(union))])

    shuffle_in_place(chars)
    return "".join(chars)


def generate_secure_token(nbytes: int = 32) -> str:
    """Generate a cryptographically secure URL-safe random token.

    Args:
        nbytes: Number of random bytes before base64 encoding (default 32).

    Returns:
        URL-safe base64 string without padding (43 chars for 32 bytes).
    """
    return _b64url(secrets.token_bytes(nbytes))


def generate_salt(nbytes: int = 16) -> str:
    """Per-record salt, URL-safe base64 encoded."""
    return _b64url(secrets.token_bytes(nbytes))
