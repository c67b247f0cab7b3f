"""
Input validators and normalisers: framework-agnostic, pure functions.

Each normaliser returns ``None`` for input it rejects; the service layer turns
that into a 400.
"""

from __future__ import annotations

import re
import uuid
from typing import Any, Optional

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_STRIP_RE = re.compile(r"[\s\-()\u202c]")
_INDIAN_MOBILE_RE = re.compile(r"^[6-9]\d{9}$")
_NUMERIC_OTP_RE = re.compile(r"[0-9]{6}")


def as_text(value: Any) -> str:
    """Coerce an optional JSON value to a stripped string."""
    if value is None:
        return ""
    return str(value).strip()


def normalize_email(value: Any) -> str:
    return as_text(value).lower()


def is_valid_email(email: str) -> bool:
    """Return True if *email* has the ``local@domain.tld`` shape."""
    return bool(_EMAIL_RE.match(email))


def normalize_indian_phone(value: Any) -> Optional[str]:
    """Normalise an Indian mobile number to E.164 (``+91XXXXXXXXXX``).

    Accepts spaces, dashes, parentheses and an optional ``+91`` / ``91``
    prefix. Only ten-digit numbers starting with 6–9 are valid mobiles.

    Returns:
        The E.164 string, or None when the input is not an Indian mobile.
    """
    cleaned = _PHONE_STRIP_RE.sub("", as_text(value))
    if not cleaned:
        return None
    if not re.fullmatch(r"\+?[0-9]+", cleaned):
        return None

    digits = cleaned.lstrip("+")
    if len(digits) == 12 and digits.startswith("91"):
        digits = digits[2:]
    if not _INDIAN_MOBILE_RE.match(digits):
        return None
    return f"+91{digits}"


def is_numeric_otp(value: str) -> bool:
    """Return True for exactly six ASCII digits."""
    return bool(_NUMERIC_OTP_RE.fullmatch(value))


def is_valid_uuid(value: str) -> bool:
    """Return True if *value* is a canonical version 1–5 UUID string."""
    try:
        parsed = uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        return False
    return (
        str(parsed) == value.lower()
        and parsed.variant == uuid.RFC_4122
        and 1 <= (parsed.version or 0) <= 5
    )
