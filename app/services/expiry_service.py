# app/services/expiry_service.py
from __future__ import annotations

"""
CinePass — Expiry Reconciler
============================
Subscriptions decay `active → expired` purely by time. Correctness never
depends on the daily sweep: every subscription read and access check calls
`update_expired_subscriptions(db, user_id)` first, so a stale "active" row is
never observed. The sweep only bounds staleness for rows nobody reads.

The sweep also closes pending orders whose payment window has passed:
- never reached the gateway (no external id) → `failed`
- reached the gateway but never settled      → `cancelled`
A late "succeeded" from the provider still upgrades such an order to paid.
"""

import logging
from typing import Dict, Optional
from uuid import UUID

from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.clock import Clock, system_clock
from app.core.config import settings
from app.core.scheduler import RecurringTask
from app.db.models.order import Order
from app.db.models.subscription import Subscription
from app.db.session import async_session_maker, session_scope
from app.schemas.enums import OrderStatus, SubscriptionStatus

logger = logging.getLogger("subscriptions.expiry")

SWEEP_LOCK_KEY = "maintenance:subscription-expiry:lock"


# ──────────────────────────────────────────────────────────────
# ⏳ Subscriptions
# ──────────────────────────────────────────────────────────────
async def update_expired_subscriptions(
    db: AsyncSession,
    user_id: Optional[UUID] = None,
    *,
    clock: Clock = system_clock,
) -> int:
    """Flip `active` rows with `expires_at < now` to `expired` (optionally one user). Commits."""
    now = clock.now()
    stmt = (
        update(Subscription)
        .where(Subscription.status == SubscriptionStatus.ACTIVE, Subscription.expires_at < now)
        .values(status=SubscriptionStatus.EXPIRED)
        .execution_options(synchronize_session=False)
    )
    if user_id is not None:
        stmt = stmt.where(Subscription.user_id == user_id)

    result = await db.execute(stmt)
    await db.commit()
    count = int(result.rowcount or 0)
    if count:
        logger.info("Expired subscriptions | user_id=%s count=%s", user_id or "*", count)
    return count


async def update_all_expired_subscriptions(db: AsyncSession, *, clock: Clock = system_clock) -> int:
    count = await update_expired_subscriptions(db, None, clock=clock)
    logger.info("Subscription expiry sweep | expired=%s", count)
    return count


# ──────────────────────────────────────────────────────────────
# 🧾 Stale orders
# ──────────────────────────────────────────────────────────────
async def expire_stale_orders(db: AsyncSession, *, clock: Clock = system_clock) -> int:
    now = clock.now()
    base = (
        update(Order)
        .where(
            Order.order_status == OrderStatus.PENDING,
            Order.expires_at.is_not(None),
            Order.expires_at < now,
        )
        .execution_options(synchronize_session=False)
    )
    failed = await db.execute(
        base.where(Order.external_payment_id.is_(None)).values(order_status=OrderStatus.FAILED, updated_at=now)
    )
    cancelled = await db.execute(
        base.where(Order.external_payment_id.is_not(None)).values(order_status=OrderStatus.CANCELLED, updated_at=now)
    )
    await db.commit()

    total = int(failed.rowcount or 0) + int(cancelled.rowcount or 0)
    if total:
        logger.info(
            "Closed stale pending orders | failed=%s cancelled=%s",
            failed.rowcount or 0,
            cancelled.rowcount or 0,
        )
    return total


# ──────────────────────────────────────────────────────────────
# 🗓️ Sweep
# ──────────────────────────────────────────────────────────────
async def run_expiry_sweep(
    *,
    clock: Clock = system_clock,
    session_factory: async_sessionmaker = async_session_maker,
) -> Dict[str, int]:
    """One full sweep in its own session; returns counts for observability."""
    async with session_scope(session_factory) as db:
        subscriptions = await update_all_expired_subscriptions(db, clock=clock)
        orders = await expire_stale_orders(db, clock=clock)
    return {"subscriptions": subscriptions, "orders": orders}


def build_expiry_task(
    *,
    clock: Clock = system_clock,
    session_factory: async_sessionmaker = async_session_maker,
) -> RecurringTask:
    """Daily sweep (00:01 UTC by default), single-replica via a Redis lock."""

    async def _job() -> Dict[str, int]:
        return await run_expiry_sweep(clock=clock, session_factory=session_factory)

    return RecurringTask(
        "subscription-expiry",
        _job,
        CronTrigger(
            hour=settings.SUBSCRIPTION_SWEEP_HOUR,
            minute=settings.SUBSCRIPTION_SWEEP_MINUTE,
            timezone="UTC",
        ),
        clock=clock,
        lock_key=SWEEP_LOCK_KEY,
        lock_ttl_seconds=settings.SWEEP_LOCK_TTL_SECONDS,
    )


__all__ = [
    "SWEEP_LOCK_KEY",
    "update_expired_subscriptions",
    "update_all_expired_subscriptions",
    "expire_stale_orders",
    "run_expiry_sweep",
    "build_expiry_task",
]
