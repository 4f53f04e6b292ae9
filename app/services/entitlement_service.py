# app/services/entitlement_service.py
from __future__ import annotations

"""
CinePass — Entitlement Granting
===============================
Turns a paid order into exactly one entitlement, no matter how many times or
from how many paths (webhook, poll, retries) it is invoked.

Idempotency
-----------
The order id is the key: `subscriptions.order_id` and
`user_purchased_films.order_id` are both UNIQUE.

1) Look for an entitlement already created for this order → `already_granted`.
2) Films only: a valid purchase of the same film from another order also
   counts as already granted.
3) Insert the entitlement and mark the order paid in the same commit.
4) A concurrent writer that won the race surfaces as `IntegrityError` → roll
   back, re-read, and report `already_granted`.

Marking paid never overwrites an existing `paid_at`.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union
from uuid import UUID, uuid4

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.clock import Clock, system_clock
from app.core.exceptions import EntitlementGrantError, OrderValidationError
from app.db.models.order import Order
from app.db.models.subscription import Subscription
from app.db.models.subscription_plan import SubscriptionPlan
from app.db.models.user import User
from app.db.models.user_purchased_film import UserPurchasedFilm
from app.schemas.enums import OrderStatus, SubscriptionStatus
from app.schemas.orders import FilmOrder, SubscriptionOrder

logger = logging.getLogger("entitlements")


@dataclass(frozen=True)
class GrantResult:
    granted: bool
    already_granted: bool
    entitlement_id: Optional[UUID]
    message: str


# ──────────────────────────────────────────────────────────────
# 🔧 Helpers
# ──────────────────────────────────────────────────────────────
async def _mark_order_paid(db: AsyncSession, order_id: UUID, now: datetime) -> None:
    order = await db.get(Order, order_id)
    if order is None:
        raise EntitlementGrantError("Order not found while granting", details={"order_id": str(order_id)})
    order.order_status = OrderStatus.PAID
    if order.paid_at is None:
        order.paid_at = now
    order.updated_at = now


async def _subscription_for_order(db: AsyncSession, order_id: UUID) -> Optional[Subscription]:
    result = await db.execute(select(Subscription).where(Subscription.order_id == order_id))
    return result.scalars().first()


async def _purchase_for_order(db: AsyncSession, order_id: UUID) -> Optional[UserPurchasedFilm]:
    result = await db.execute(select(UserPurchasedFilm).where(UserPurchasedFilm.order_id == order_id))
    return result.scalars().first()


async def _valid_purchase(
    db: AsyncSession, user_id: UUID, film_id: UUID, now: datetime
) -> Optional[UserPurchasedFilm]:
    result = await db.execute(
        select(UserPurchasedFilm)
        .where(
            UserPurchasedFilm.user_id == user_id,
            UserPurchasedFilm.film_id == film_id,
            or_(UserPurchasedFilm.expires_at.is_(None), UserPurchasedFilm.expires_at > now),
        )
        .limit(1)
    )
    return result.scalars().first()


async def _already_granted(db: AsyncSession, order_id: UUID, entitlement_id: UUID, now: datetime, message: str) -> GrantResult:
    await _mark_order_paid(db, order_id, now)
    await db.commit()
    logger.info("Entitlement already granted | order_id=%s entitlement_id=%s", order_id, entitlement_id)
    return GrantResult(granted=False, already_granted=True, entitlement_id=entitlement_id, message=message)


# ──────────────────────────────────────────────────────────────
# 🎁 Grant
# ──────────────────────────────────────────────────────────────
async def grant_entitlement(
    db: AsyncSession,
    order: Union[SubscriptionOrder, FilmOrder],
    *,
    clock: Clock = system_clock,
) -> GrantResult:
    if isinstance(order, SubscriptionOrder):
        return await _grant_subscription(db, order, clock=clock)
    if isinstance(order, FilmOrder):
        return await _grant_film(db, order, clock=clock)
    raise TypeError(f"Unsupported paid order: {type(order).__name__}")


async def _grant_subscription(db: AsyncSession, order: SubscriptionOrder, *, clock: Clock) -> GrantResult:
    now = clock.now()
    existing = await _subscription_for_order(db, order.order_id)
    if existing is not None:
        return await _already_granted(db, order.order_id, existing.id, now, "Subscription already granted")

    plan = await db.get(SubscriptionPlan, order.plan_id)
    if plan is None:
        raise EntitlementGrantError("Subscription plan not found", details={"plan_id": str(order.plan_id)})

    subscription = Subscription(
        id=uuid4(),
        user_id=order.user_id,
        plan_id=plan.id,
        order_id=order.order_id,
        status=SubscriptionStatus.ACTIVE,
        started_at=now,
        expires_at=now + timedelta(days=plan.duration_days),
        auto_renew=False,
        created_at=now,
    )
    subscription_id = subscription.id
    db.add(subscription)
    await _mark_order_paid(db, order.order_id, now)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        existing = await _subscription_for_order(db, order.order_id)
        if existing is None:
            raise
        return await _already_granted(db, order.order_id, existing.id, now, "Subscription already granted")

    logger.info(
        "Subscription granted | order_id=%s user_id=%s plan_id=%s subscription_id=%s",
        order.order_id,
        order.user_id,
        order.plan_id,
        subscription_id,
    )
    return GrantResult(granted=True, already_granted=False, entitlement_id=subscription_id, message="Subscription activated")


async def _grant_film(db: AsyncSession, order: FilmOrder, *, clock: Clock) -> GrantResult:
    now = clock.now()
    existing = await _purchase_for_order(db, order.order_id)
    if existing is not None:
        return await _already_granted(db, order.order_id, existing.id, now, "Film already granted")

    valid = await _valid_purchase(db, order.user_id, order.film_id, now)
    if valid is not None:
        return await _already_granted(db, order.order_id, valid.id, now, "Film already purchased")

    purchase = UserPurchasedFilm(
        id=uuid4(),
        user_id=order.user_id,
        film_id=order.film_id,
        order_id=order.order_id,
        purchased_at=now,
        expires_at=None,
    )
    purchase_id = purchase.id
    db.add(purchase)
    await _mark_order_paid(db, order.order_id, now)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        existing = await _purchase_for_order(db, order.order_id)
        if existing is None:
            raise
        return await _already_granted(db, order.order_id, existing.id, now, "Film already granted")

    logger.info(
        "Film purchase granted | order_id=%s user_id=%s film_id=%s purchase_id=%s",
        order.order_id,
        order.user_id,
        order.film_id,
        purchase_id,
    )
    return GrantResult(granted=True, already_granted=False, entitlement_id=purchase_id, message="Film purchase completed")


# ──────────────────────────────────────────────────────────────
# 🛠️ Manual (admin) grant
# ──────────────────────────────────────────────────────────────
async def grant_manual_subscription(
    db: AsyncSession,
    *,
    user_id: UUID,
    plan_id: UUID,
    duration_days: Optional[int] = None,
    clock: Clock = system_clock,
) -> Subscription:
    """Cancel the user's active subscriptions and start a fresh one with no order."""
    if await db.get(User, user_id) is None:
        raise OrderValidationError("User not found", reason="USER_NOT_FOUND")
    plan = await db.get(SubscriptionPlan, plan_id)
    if plan is None:
        raise OrderValidationError("Subscription plan not found", reason="PLAN_UNAVAILABLE")

    now = clock.now()
    await db.execute(
        update(Subscription)
        .where(Subscription.user_id == user_id, Subscription.status == SubscriptionStatus.ACTIVE)
        .values(status=SubscriptionStatus.CANCELLED)
        .execution_options(synchronize_session=False)
    )
    subscription = Subscription(
        id=uuid4(),
        user_id=user_id,
        plan_id=plan.id,
        order_id=None,
        status=SubscriptionStatus.ACTIVE,
        started_at=now,
        expires_at=now + timedelta(days=duration_days or plan.duration_days),
        auto_renew=False,
        created_at=now,
    )
    subscription_id = subscription.id
    db.add(subscription)
    await db.commit()

    result = await db.execute(
        select(Subscription)
        .options(selectinload(Subscription.plan))
        .where(Subscription.id == subscription_id)
        .execution_options(populate_existing=True)
    )
    logger.info(
        "Manual subscription granted | user_id=%s plan_id=%s subscription_id=%s",
        user_id,
        plan_id,
        subscription_id,
    )
    return result.scalars().one()


__all__ = ["GrantResult", "grant_entitlement", "grant_manual_subscription"]
