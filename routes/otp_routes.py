"""
OTP action endpoints.

POST /otp/admin-login       request | verify
POST /otp/phone             request | resend | verify            (bearer)
POST /otp/return            request | resend | verify            (bearer)
POST /otp/password-reset    request | verify | reset

Each endpoint takes one JSON object with an ``action`` discriminator. The
body is read by hand, so a malformed or empty body answers 400
"Missing action" instead of a 422 validation report.

OPTIONS on every path answers the CORS preflight with 200.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from dependencies import (
    get_admin_login_service,
    get_current_user_id,
    get_password_reset_service,
    get_phone_verification_service,
    get_request_context,
    get_return_otp_service,
)
from errors import CORS_HEADERS, ValidationError
from schemas.dto.requests.otp import (
    ACTION_REQUEST,
    ACTION_RESEND,
    ACTION_RESET,
    ACTION_VERIFY,
    OtpActionRequest,
)
from schemas.dto.responses.otp import OtpActionResponse
from services.admin_login_service import AdminLoginService
from services.otp import RequestContext
from services.password_reset_service import PasswordResetService
from services.phone_verification_service import PhoneVerificationService
from services.return_otp_service import ReturnOtpService
from shared.logging import get_logger

log = get_logger(__name__)

router = APIRouter(prefix="/otp", tags=["otp"])


async def _read_action(request: Request) -> tuple[str, OtpActionRequest]:
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        raise ValidationError("Missing action")

    try:
        body = OtpActionRequest.model_validate(payload)
    except PydanticValidationError:
        raise ValidationError("Invalid request body")
    if not body.action:
        raise ValidationError("Missing action")
    return body.action, body


def _respond(result: OtpActionResponse) -> JSONResponse:
    return JSONResponse(content=result.model_dump(exclude_none=True), headers=CORS_HEADERS)


def _invalid_action(flow: str, action: Optional[str]) -> ValidationError:
    log.info("otp_invalid_action", flow=flow, action=action)
    return ValidationError("Invalid action", field="action")


def _preflight() -> Response:
    return Response(status_code=200, content="ok", headers=CORS_HEADERS)


# ── Admin login ───────────────────────────────────────────────────────────────


@router.post("/admin-login")
async def admin_login(
    request: Request,
    service: AdminLoginService = Depends(get_admin_login_service),
    context: RequestContext = Depends(get_request_context),
) -> JSONResponse:
    action, body = await _read_action(request)
    if action == ACTION_REQUEST:
        return _respond(await service.request(body.email, context))
    if action == ACTION_VERIFY:
        return _respond(await service.verify(body.email, body.otp))
    raise _invalid_action("admin_login", action)


@router.options("/admin-login")
async def admin_login_preflight() -> Response:
    return _preflight()


# ── Phone verification ────────────────────────────────────────────────────────


@router.post("/phone")
async def phone_verification(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    service: PhoneVerificationService = Depends(get_phone_verification_service),
    context: RequestContext = Depends(get_request_context),
) -> JSONResponse:
    action, body = await _read_action(request)
    if action == ACTION_REQUEST:
        return _respond(await service.request(user_id, body.phone, context))
    if action == ACTION_RESEND:
        return _respond(await service.resend(user_id, body.phone, context))
    if action == ACTION_VERIFY:
        return _respond(await service.verify(user_id, body.phone, body.otp))
    raise _invalid_action("phone", action)


@router.options("/phone")
async def phone_verification_preflight() -> Response:
    return _preflight()


# ── Return request ────────────────────────────────────────────────────────────


@router.post("/return")
async def return_request(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    service: ReturnOtpService = Depends(get_return_otp_service),
    context: RequestContext = Depends(get_request_context),
) -> JSONResponse:
    action, body = await _read_action(request)
    if action == ACTION_REQUEST:
        return _respond(await service.request(user_id, body.order_id, context))
    if action == ACTION_RESEND:
        return _respond(await service.resend(user_id, body.order_id, context))
    if action == ACTION_VERIFY:
        return _respond(await service.verify(user_id, body.order_id, body.otp))
    raise _invalid_action("return", action)


@router.options("/return")
async def return_request_preflight() -> Response:
    return _preflight()


# ── Password reset ────────────────────────────────────────────────────────────


@router.post("/password-reset")
async def password_reset(
    request: Request,
    service: PasswordResetService = Depends(get_password_reset_service),
    context: RequestContext = Depends(get_request_context),
) -> JSONResponse:
    action, body = await _read_action(request)
    if action == ACTION_REQUEST:
        return _respond(await service.request(body.email, context))
    if action == ACTION_VERIFY:
        return _respond(await service.verify(body.email, body.otp))
    if action == ACTION_RESET:
        return _respond(await service.reset(body.email, body.reset_token, body.new_password))
    raise _invalid_action("password_reset", action)


@router.options("/password-reset")
async def password_reset_preflight() -> Response:
    return _preflight()
