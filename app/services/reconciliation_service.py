# app/services/reconciliation_service.py
from __future__ import annotations

"""
CinePass — Payment Reconciliation
=================================
Two paths converge on the same idempotent grant:

• **Webhook** (`handle_webhook`): the provider pushes `{object: {id, status,
  metadata}}`. The order is found by `external_payment_id`; unknown payments
  are acknowledged without action so the provider stops retrying.
• **Active poll** (`check_and_process_order`): the client asks us to look the
  payment up at the provider (e.g. after returning from the payment page).

Status rules
------------
- provider `succeeded` → grant the entitlement (marks the order paid)
- `canceled` → cancelled, unknown → failed, `pending`/`waiting_for_capture` → pending
- a paid order is never moved to another status; cancelled and failed orders
  only move on to paid
- webhook metadata must describe the same order (id, user, target) as the row
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, system_clock
from app.core.exceptions import PaymentGatewayError, WebhookPayloadError
from app.core.security import CallerContext
from app.db.models.order import Order
from app.schemas.enums import OrderStatus, map_gateway_status
from app.schemas.orders import paid_order_from_row, parse_paid_order
from app.schemas.payments import WebhookNotification
from app.services.entitlement_service import GrantResult, grant_entitlement
from app.services.order_service import get_user_order
from app.services.payment_gateway import PaymentGateway

logger = logging.getLogger("payments.reconcile")

_SETTLED = (OrderStatus.CANCELLED, OrderStatus.FAILED)


@dataclass(frozen=True)
class WebhookOutcome:
    matched: bool
    order_id: Optional[UUID] = None
    order_status: Optional[OrderStatus] = None
    grant: Optional[GrantResult] = None


@dataclass(frozen=True)
class PollOutcome:
    checked: bool
    message: str
    order: Order
    gateway_status: Optional[str] = None
    grant: Optional[GrantResult] = None


def apply_status(order: Order, new_status: OrderStatus, now: datetime) -> bool:
    """Move `order` to `new_status` if the transition is forward. Returns True on change.

    Paid is final. Cancelled and failed only move on to paid (a late success).
    """
    current = order.order_status
    if current == OrderStatus.PAID or current == new_status:
        return False
    if current in _SETTLED and new_status != OrderStatus.PAID:
        return False
    order.order_status = new_status
    order.updated_at = now
    if new_status == OrderStatus.PAID and order.paid_at is None:
        order.paid_at = now
    return True


# ──────────────────────────────────────────────────────────────
# 🔔 Webhook
# ──────────────────────────────────────────────────────────────
async def handle_webhook(
    db: AsyncSession,
    notification: WebhookNotification,
    *,
    clock: Clock = system_clock,
) -> WebhookOutcome:
    payment = notification.object
    result = await db.execute(select(Order).where(Order.external_payment_id == payment.id))
    order = result.scalars().first()
    if order is None:
        logger.warning("Webhook for unknown payment | payment_id=%s status=%s", payment.id, payment.status)
        return WebhookOutcome(matched=False)

    order_id = order.id
    new_status = map_gateway_status(payment.status)

    if new_status == OrderStatus.PAID:
        expected = paid_order_from_row(order)
        try:
            claimed = parse_paid_order(payment.metadata)
        except ValidationError as exc:
            logger.warning("Webhook metadata invalid | payment_id=%s order_id=%s", payment.id, order_id)
            raise WebhookPayloadError(
                "Payment metadata is not a valid paid order",
                details=[{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()],
            ) from exc
        if claimed != expected:
            logger.warning("Webhook metadata mismatch | payment_id=%s order_id=%s", payment.id, order_id)
            raise WebhookPayloadError("Payment metadata does not match the order")

        grant = await grant_entitlement(db, expected, clock=clock)
        refreshed = await db.get(Order, order_id, populate_existing=True)
        logger.info(
            "Webhook processed | payment_id=%s order_id=%s granted=%s already=%s",
            payment.id,
            order_id,
            grant.granted,
            grant.already_granted,
        )
        return WebhookOutcome(matched=True, order_id=order_id, order_status=refreshed.order_status, grant=grant)

    if apply_status(order, new_status, clock.now()):
        await db.commit()
        logger.info("Order status updated | order_id=%s status=%s", order_id, new_status.value)
    return WebhookOutcome(matched=True, order_id=order_id, order_status=order.order_status)


# ──────────────────────────────────────────────────────────────
# 🔎 Active poll
# ──────────────────────────────────────────────────────────────
async def check_and_process_order(
    db: AsyncSession,
    caller: CallerContext,
    order_id: UUID,
    *,
    gateway: PaymentGateway,
    clock: Clock = system_clock,
) -> PollOutcome:
    order = await get_user_order(db, caller, order_id)
    if not order.external_payment_id:
        return PollOutcome(checked=False, message="No payment to check", order=order)

    try:
        payment = await gateway.get_payment(order.external_payment_id)
    except PaymentGatewayError:
        raise
    except Exception as exc:
        logger.error("Gateway lookup failed | order_id=%s | %r", order_id, exc)
        raise PaymentGatewayError() from exc

    new_status = map_gateway_status(payment.status)
    if new_status == OrderStatus.PAID:
        grant = await grant_entitlement(db, paid_order_from_row(order), clock=clock)
        refreshed = await db.get(Order, order_id, populate_existing=True)
        return PollOutcome(
            checked=True,
            message=grant.message,
            order=refreshed,
            gateway_status=payment.status,
            grant=grant,
        )

    if apply_status(order, new_status, clock.now()):
        await db.commit()
        logger.info("Order status updated by poll | order_id=%s status=%s", order_id, new_status.value)
    return PollOutcome(
        checked=True,
        message=f"Payment status: {payment.status}",
        order=order,
        gateway_status=payment.status,
    )


__all__ = ["WebhookOutcome", "PollOutcome", "apply_status", "handle_webhook", "check_and_process_order"]
