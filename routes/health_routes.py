"""
Health check endpoint.

GET /health checks MongoDB connectivity and required configuration.
Rules:
- MongoDB not configured → "degraded" (200); the OTP endpoints answer 500.
- MongoDB ping failure → "unhealthy" (503).
- Missing OTP pepper or delivery keys → "degraded" (200), listed in checks.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from config import AppSettings
from schemas.dto.responses.common import HealthResponse
from shared.logging import get_logger

log = get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request) -> JSONResponse:
    settings: AppSettings = request.app.state.settings
    checks: dict[str, str] = {}
    overall = "healthy"

    db = getattr(request.app.state, "db", None)
    if db is None:
        checks["mongodb"] = "not_configured"
        overall = "degraded"
    else:
        try:
            await db.client.admin.command("ping")
            checks["mongodb"] = "ok"
        except PyMongoError as exc:
            log.warning("health_mongodb_ping_failed", error_type=type(exc).__name__)
            checks["mongodb"] = "error"
            overall = "unhealthy"

    configured = {
        "otp_pepper": bool(settings.otp.otp_pepper),
        "email": bool(settings.email.resend_api_key),
        "sms": settings.sms.is_configured,
        "jwt": settings.jwt.is_configured,
    }
    for name, ok in configured.items():
        checks[name] = "ok" if ok else "not_configured"
        if not ok and overall == "healthy":
            overall = "degraded"

    status_code = 503 if overall == "unhealthy" else 200
    return JSONResponse(
        status_code=status_code,
        content=HealthResponse(status=overall, checks=checks).model_dump(),
    )
