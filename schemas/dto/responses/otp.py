"""
Response DTOs for the OTP action endpoints.

OtpActionResponse: 200 body for every action; unset fields are dropped
                    (route handlers use exclude_none=True)
AdminSession     : explicit admin session minted after admin OTP verify
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class AdminSession(BaseModel):
    """Admin session handed to the caller instead of an ambient login flag."""

    model_config = ConfigDict(populate_by_name=True)

    admin_token: str
    email: str
    expires_at: str  # ISO 8601 string


class OtpActionResponse(BaseModel):
    """Success body for POST /otp/* (200)."""

    model_config = ConfigDict(populate_by_name=True)

    ok: Optional[bool] = True
    throttled: Optional[bool] = None
    expires_at: Optional[str] = None
    reset_token: Optional[str] = None
    session: Optional[AdminSession] = None
    # Password reset only: disclosed "no account" message (see DESIGN.md)
    error: Optional[str] = None
