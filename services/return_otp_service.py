"""
ReturnOtpService: email OTP confirming a customer wants to return an order.

Identity is ``<user_id>:<order uuid>``. The code goes to the email recorded on
the order, not to whatever address the caller claims. The order is re-checked
on every action, so ownership and eligibility are enforced even when the
submitted code is correct.

A verified code has no side effect here; the storefront submits the return
itself once this endpoint answers ``ok``.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Callable, Optional

from config import EmailSettings
from errors import ForbiddenError, NotFoundError, ValidationError
from infrastructure.email.protocol import EmailProvider
from infrastructure.email.renderer import OtpEmailRenderer
from repositories.order_repository import OrderRepository
from repositories.otp_repository import OtpStore
from schemas.dto.responses.otp import OtpActionResponse
from schemas.models.order import OrderDoc
from schemas.models.otp import OtpRecordDoc
from services.otp import OtpEngine, OtpPolicy, RequestContext
from shared.datetime_utils import to_iso, utcnow
from shared.generators import generate_otp_code
from shared.logging import get_logger
from shared.validators import as_text, is_numeric_otp, is_valid_email, is_valid_uuid

log = get_logger(__name__)

RETURN_POLICY = OtpPolicy(
    name="return",
    ttl=timedelta(minutes=10),
    cooldown=timedelta(seconds=10),
    generate_secret=generate_otp_code,
)


class ReturnOtpService:
    def __init__(
        self,
        store: OtpStore,
        orders: OrderRepository,
        email_provider: EmailProvider,
        renderer: OtpEmailRenderer,
        email_settings: EmailSettings,
        pepper: str,
        clock: Callable = utcnow,
    ) -> None:
        self._engine = OtpEngine(store, RETURN_POLICY, pepper, clock)
        self._orders = orders
        self._email = email_provider
        self._renderer = renderer
        self._from_address = email_settings.resend_from

    @staticmethod
    def identity_key(user_id: str, order_id: str) -> str:
        return f"{user_id}:{order_id}"

    async def _eligible_order(self, user_id: str, order_id: Optional[str]) -> tuple[str, OrderDoc, str]:
        """Load the order and check it can still be returned by *user_id*.

        Returns:
            (order uuid, order, customer email)
        """
        oid = as_text(order_id).lower()
        if not oid or not is_valid_uuid(oid):
            raise ValidationError("Invalid order_id", field="order_id")

        order = await self._orders.find_by_id(oid)
        if order is None:
            raise NotFoundError("Order not found")
        if order.user_id != user_id:
            log.warning("return_otp_forbidden", order_id=oid, user_id=user_id)
            raise ForbiddenError("Forbidden")
        if not order.is_delivered:
            raise ValidationError("Order is not delivered")
        if order.return_status:
            raise ValidationError("Return already requested")

        email = as_text(order.customer_email).lower()
        if not email or not is_valid_email(email):
            raise ValidationError("Missing customer email")
        return oid, order, email

    async def request(
        self,
        user_id: str,
        order_id: Optional[str],
        context: Optional[RequestContext] = None,
    ) -> OtpActionResponse:
        """Send a code to the order's customer email. ``resend`` is the same operation."""
        oid, order, email = await self._eligible_order(user_id, order_id)

        async def deliver(otp: str, record: OtpRecordDoc) -> None:
            subject, html = self._renderer.return_request(
                otp, RETURN_POLICY.ttl_minutes, order_reference=order.order_id
            )
            await self._email.send(
                from_address=self._from_address, to=[email], subject=subject, html=html
            )

        result = await self._engine.request(self.identity_key(user_id, oid), deliver, context)
        if result.throttled:
            return OtpActionResponse(ok=True, throttled=True)
        return OtpActionResponse(ok=True, expires_at=to_iso(result.expires_at))

    resend = request

    async def verify(
        self, user_id: str, order_id: Optional[str], otp: Optional[str]
    ) -> OtpActionResponse:
        oid, _, _ = await self._eligible_order(user_id, order_id)
        code = as_text(otp)
        if not is_numeric_otp(code):
            raise ValidationError("Invalid OTP", field="otp")

        await self._engine.verify(self.identity_key(user_id, oid), code)
        log.info("return_otp_verified", order_id=oid, user_id=user_id)
        return OtpActionResponse(ok=True)
