"""
Application error hierarchy and FastAPI exception handlers.

AppError is the base for all typed errors. The global exception handler
converts AppError subclasses to consistent JSON responses.

OTP protocol-state errors (expired, invalid, exhausted, already used) are
expected outcomes, not bugs: they map to 400 with a message naming the
condition. Infrastructure failures map to 500/502 with a generic message.

Every error response carries the permissive CORS headers, including the
500 path that Starlette's CORSMiddleware never sees.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.logging import get_logger

log = get_logger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


class AppError(Exception):
    """Base application error. All typed errors inherit from this."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details

    def to_dict(self) -> dict:
        payload: dict = {"error": self.message, "code": self.error_code}
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(AppError):
    status_code = 400
    error_code = "validation_error"


class AuthenticationError(AppError):
    status_code = 401
    error_code = "authentication_error"


class ForbiddenError(AppError):
    status_code = 403
    error_code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"


class RateLimitError(AppError):
    status_code = 429
    error_code = "rate_limit_exceeded"


# ── OTP protocol-state errors ────────────────────────────────────────────────


class OtpStateError(AppError):
    status_code = 400
    error_code = "otp_error"


class OtpExpiredError(OtpStateError):
    error_code = "otp_expired"


class OtpInvalidError(OtpStateError):
    error_code = "otp_invalid"


class OtpAttemptsExceededError(OtpStateError):
    error_code = "too_many_attempts"


class OtpAlreadyUsedError(OtpStateError):
    error_code = "otp_already_used"


class SessionExpiredError(OtpStateError):
    error_code = "session_expired"


class InvalidTokenError(OtpStateError):
    error_code = "invalid_token"


# ── Infrastructure errors ────────────────────────────────────────────────────


class ConfigurationError(AppError):
    status_code = 500
    error_code = "configuration_error"


class StoreError(AppError):
    status_code = 500
    error_code = "store_error"


class UpstreamError(AppError):
    status_code = 500
    error_code = "upstream_error"


class DeliveryError(AppError):
    status_code = 502
    error_code = "delivery_failed"


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code, content=exc.to_dict(), headers=CORS_HEADERS
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request body", "code": "validation_error"},
            headers=CORS_HEADERS,
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        # Sentry integration: if sentry_sdk is initialized it will auto-capture
        # unhandled exceptions before this handler fires.
        log.error(
            "unhandled_exception",
            path=request.url.path,
            error_type=type(exc).__name__,
        )
        return JSONResponse(
            status_code=500,
            content={"error": "An internal server error occurred.", "code": "internal_error"},
            headers=CORS_HEADERS,
        )
