"""
Requester metadata for FastAPI requests.

OTP rows record who asked for them (IP and user agent) for later audit; the
values are informational only and never take part in verification.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

MAX_USER_AGENT_LENGTH = 500

_IP_HEADERS: tuple[str, ...] = (
    "CF-Connecting-IP",
    "X-Forwarded-For",
    "X-Real-IP",
)


def get_client_ip(request: Request) -> Optional[str]:
    """Extract the client IP from proxy headers, falling back to the peer.

    Only the first entry of ``X-Forwarded-For`` is used.

    Returns:
        The resolved client IP string, or ``None`` if none can be found.
    """
    for header in _IP_HEADERS:
        ip_value = request.headers.get(header)
        if ip_value:
            client_ip = ip_value.split(",")[0].strip()
            if client_ip:
                return client_ip

    return request.client.host if request.client else None


def get_user_agent(request: Request) -> Optional[str]:
    """The ``User-Agent`` header truncated to 500 characters, or None."""
    user_agent = request.headers.get("user-agent", "")[:MAX_USER_AGENT_LENGTH]
    return user_agent or None
