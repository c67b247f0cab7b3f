"""
Request DTO shared by the OTP action endpoints.

Each endpoint takes a JSON body with an ``action`` discriminator and the
fields that action needs:

POST /otp/admin-login       request | verify            (email, otp)
POST /otp/phone             request | resend | verify   (phone, otp)
POST /otp/return            request | resend | verify   (order_id, otp)
POST /otp/password-reset    request | verify | reset    (email, otp,
                                                         reset_token,
                                                         new_password)

Every field is optional at this layer; the flow services decide what is
required per action and answer with a descriptive 400. Scalar JSON values are
coerced to strings so ``"otp": 123456`` behaves like ``"otp": "123456"``.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

ACTION_REQUEST = "request"
ACTION_RESEND = "resend"
ACTION_VERIFY = "verify"
ACTION_RESET = "reset"


class OtpActionRequest(BaseModel):
    """Request body for every POST /otp/* endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    action: Optional[str] = None
    email: Optional[str] = None
    otp: Optional[str] = None
    phone: Optional[str] = None
    order_id: Optional[str] = None
    reset_token: Optional[str] = None
    new_password: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _scalars_to_text(cls, v: Any) -> Any:
        if isinstance(v, bool):
            return None
        if isinstance(v, (int, float)):
            return str(v)
        return v

    @field_validator("action", mode="after")
    @classmethod
    def _normalize_action(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None
