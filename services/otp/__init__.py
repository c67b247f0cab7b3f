"""OTP lifecycle engine package.

Import from here rather than from the submodules:

    from services.otp import OtpEngine, OtpPolicy, RequestContext
"""

from services.otp.engine import (
    Deliver,
    IssueResult,
    OtpEngine,
    RequestContext,
    VerifyResult,
)
from services.otp.policy import OtpPolicy
from services.otp.tokens import MintedToken, mint_reset_token

__all__ = [
    "Deliver",
    "IssueResult",
    "MintedToken",
    "OtpEngine",
    "OtpPolicy",
    "RequestContext",
    "VerifyResult",
    "mint_reset_token",
]
