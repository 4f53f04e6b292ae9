# app/services/order_service.py
from __future__ import annotations

"""
CinePass — Order Lifecycle Engine
=================================
Creates orders and hands them to the payment gateway.

Flow (`create_order`)
---------------------
1) Resolve the target (active plan / paid film) from the typed request.
2) Reject a client-supplied amount or currency that disagrees with the
   catalogue price (amounts compared at 2 decimal places).
3) Insert a `pending` order with a payment window (`expires_at`) and commit,
   so the order id exists before any money moves.
4) Create the provider payment with metadata = the paid-order shape and the
   order id as idempotence key.
5) Store the provider id and raw payload; return the confirmation URL.

If step 4 fails the order stays `pending` without an external id and the
caller gets a generic `PaymentCreationError`; the expiry sweep later marks it
`failed`.

`start_checkout` adds the duplicate-purchase guard for films. The
`create_*_payment` helpers price the request from the catalogue for the
convenience endpoints that take only an id.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Tuple, Union
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, system_clock
from app.core.config import settings
from app.core.exceptions import (
    DuplicatePurchaseError,
    OrderNotFoundError,
    OrderValidationError,
    PaymentCreationError,
    PriceMismatchError,
)
from app.core.security import CallerContext
from app.db.models.film import Film
from app.db.models.order import Order
from app.db.models.subscription_plan import SubscriptionPlan
from app.schemas.enums import OrderStatus, OrderType
from app.schemas.orders import (
    FilmOrderRequest,
    SubscriptionOrderRequest,
    gateway_metadata,
    paid_order_from_row,
)
from app.services.access_service import has_user_purchased_film
from app.services.payment_gateway import PaymentGateway

logger = logging.getLogger("payments.orders")

_CENTS = Decimal("0.01")

OrderRequestT = Union[SubscriptionOrderRequest, FilmOrderRequest]


@dataclass(frozen=True)
class CheckoutResult:
    order: Order
    payment_url: Optional[str]


def normalize_amount(value) -> Decimal:
    return Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP)


# ──────────────────────────────────────────────────────────────
# 🎯 Target resolution
# ──────────────────────────────────────────────────────────────
async def _active_plan(db: AsyncSession, plan_id: UUID) -> SubscriptionPlan:
    plan = await db.get(SubscriptionPlan, plan_id)
    if plan is None or not plan.is_active:
        raise OrderValidationError("Subscription plan not found or inactive", reason="PLAN_UNAVAILABLE")
    return plan


async def _paid_film(db: AsyncSession, film_id: UUID) -> Film:
    film = await db.get(Film, film_id)
    if film is None:
        raise OrderValidationError("Film not found", reason="FILM_NOT_FOUND")
    if not film.is_paid or film.price is None:
        raise OrderValidationError("Film is free to watch", reason="FILM_NOT_PAID")
    return film


async def _resolve_target(
    db: AsyncSession, request: OrderRequestT
) -> Tuple[OrderType, Decimal, str, str]:
    """Return `(order_type, price, currency, description)` for the request."""
    if isinstance(request, SubscriptionOrderRequest):
        plan = await _active_plan(db, request.plan_id)
        return OrderType.SUBSCRIPTION, plan.price, plan.currency, f"Subscription: {plan.name}"
    if isinstance(request, FilmOrderRequest):
        film = await _paid_film(db, request.film_id)
        return OrderType.FILM, film.price, film.currency, f"Film purchase: {film.name}"
    raise TypeError(f"Unsupported order request: {type(request).__name__}")


def _default_return_url(order_id: UUID) -> str:
    return f"{settings.PAYMENT_REDIRECT_HOST}/profile/orders/{order_id}"


# ──────────────────────────────────────────────────────────────
# 🛒 Create
# ──────────────────────────────────────────────────────────────
async def create_order(
    db: AsyncSession,
    caller: CallerContext,
    request: OrderRequestT,
    *,
    gateway: PaymentGateway,
    clock: Clock = system_clock,
) -> CheckoutResult:
    order_type, price, currency, description = await _resolve_target(db, request)

    requested_currency = (request.currency or currency).upper()
    if requested_currency != currency.upper():
        raise OrderValidationError(
            "Currency does not match the catalogue price",
            reason="CURRENCY_MISMATCH",
            details={"expected": currency, "received": requested_currency},
        )

    expected = normalize_amount(price)
    received = normalize_amount(request.amount)
    if expected != received:
        raise PriceMismatchError(expected=str(expected), received=str(received))

    now = clock.now()
    order = Order(
        id=uuid4(),
        user_id=caller.user_id,
        order_type=order_type,
        plan_id=getattr(request, "plan_id", None),
        film_id=getattr(request, "film_id", None),
        amount=expected,
        currency=currency,
        order_status=OrderStatus.PENDING,
        payment_method=settings.PAYMENT_METHOD,
        created_at=now,
        updated_at=now,
        expires_at=now + timedelta(hours=settings.ORDER_PAYMENT_WINDOW_HOURS),
    )
    db.add(order)
    await db.commit()
    order_id = order.id
    logger.info("Order created | order_id=%s user_id=%s type=%s", order_id, caller.user_id, order_type.value)

    try:
        payment = await gateway.create_payment(
            amount=expected,
            currency=currency,
            return_url=request.return_url or _default_return_url(order_id),
            metadata=gateway_metadata(paid_order_from_row(order)),
            description=description,
            idempotence_key=str(order_id),
        )
    except Exception as exc:
        logger.error("Payment creation failed | order_id=%s | %r", order_id, exc)
        raise PaymentCreationError(order_id=order_id) from exc

    order.external_payment_id = payment.id
    order.metadata_json = payment.raw or None
    order.updated_at = clock.now()
    await db.commit()
    logger.info("Payment created | order_id=%s payment_id=%s", order_id, payment.id)

    return CheckoutResult(order=order, payment_url=payment.confirmation_url)


async def start_checkout(
    db: AsyncSession,
    caller: CallerContext,
    request: OrderRequestT,
    *,
    gateway: PaymentGateway,
    clock: Clock = system_clock,
) -> CheckoutResult:
    """`create_order` behind the "already own this film" guard."""
    if isinstance(request, FilmOrderRequest):
        if await has_user_purchased_film(db, caller.user_id, request.film_id, clock=clock):
            raise DuplicatePurchaseError(film_id=request.film_id)
    return await create_order(db, caller, request, gateway=gateway, clock=clock)


async def create_subscription_payment(
    db: AsyncSession,
    caller: CallerContext,
    plan_id: UUID,
    *,
    gateway: PaymentGateway,
    clock: Clock = system_clock,
    return_url: Optional[str] = None,
) -> CheckoutResult:
    plan = await _active_plan(db, plan_id)
    request = SubscriptionOrderRequest(
        plan_id=plan.id,
        amount=normalize_amount(plan.price),
        currency=plan.currency,
        return_url=return_url,
    )
    return await start_checkout(db, caller, request, gateway=gateway, clock=clock)


async def create_film_payment(
    db: AsyncSession,
    caller: CallerContext,
    film_id: UUID,
    *,
    gateway: PaymentGateway,
    clock: Clock = system_clock,
    return_url: Optional[str] = None,
) -> CheckoutResult:
    film = await _paid_film(db, film_id)
    request = FilmOrderRequest(
        film_id=film.id,
        amount=normalize_amount(film.price),
        currency=film.currency,
        return_url=return_url,
    )
    return await start_checkout(db, caller, request, gateway=gateway, clock=clock)


# ──────────────────────────────────────────────────────────────
# 📚 Reads
# ──────────────────────────────────────────────────────────────
async def list_active_plans(db: AsyncSession) -> List[SubscriptionPlan]:
    result = await db.execute(
        select(SubscriptionPlan)
        .where(SubscriptionPlan.is_active.is_(True))
        .order_by(SubscriptionPlan.price.asc(), SubscriptionPlan.name.asc())
    )
    return list(result.scalars().all())


async def list_user_orders(
    db: AsyncSession,
    caller: CallerContext,
    *,
    limit: int = 20,
    offset: int = 0,
) -> List[Order]:
    result = await db.execute(
        select(Order)
        .where(Order.user_id == caller.user_id)
        .order_by(Order.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


async def get_user_order(db: AsyncSession, caller: CallerContext, order_id: UUID) -> Order:
    """The caller's order (admins may read any). Unknown and foreign ids both 404."""
    result = await db.execute(
        select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
    )
    order = result.scalars().first()
    if order is None or (order.user_id != caller.user_id and not caller.is_admin):
        raise OrderNotFoundError(order_id)
    return order


async def list_orders(
    db: AsyncSession,
    *,
    status: Optional[OrderStatus] = None,
    user_id: Optional[UUID] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Order]:
    stmt = select(Order)
    if status is not None:
        stmt = stmt.where(Order.order_status == status)
    if user_id is not None:
        stmt = stmt.where(Order.user_id == user_id)
    result = await db.execute(stmt.order_by(Order.created_at.desc()).limit(limit).offset(offset))
    return list(result.scalars().all())


__all__ = [
    "CheckoutResult",
    "normalize_amount",
    "create_order",
    "start_checkout",
    "create_subscription_payment",
    "create_film_payment",
    "list_active_plans",
    "list_user_orders",
    "get_user_order",
    "list_orders",
]
