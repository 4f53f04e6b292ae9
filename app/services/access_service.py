# app/services/access_service.py
from __future__ import annotations

"""
CinePass — Access Decision Service
==================================
Answers "may this user watch this film?" from persisted entitlements only.

    free film                          → allowed (public)
    paid film + active subscription    → allowed (subscription)
    paid film + valid film purchase    → allowed (purchase)
    otherwise                          → denied

Every subscription read first runs the lazy expiry flip for that user, so an
`active` row past its `expires_at` is never reported as active.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, system_clock
from app.db.models.film import Film
from app.db.models.subscription import Subscription
from app.db.models.user_purchased_film import UserPurchasedFilm
from app.schemas.enums import AccessReason, SubscriptionStatus
from app.services.expiry_service import update_expired_subscriptions

logger = logging.getLogger("entitlements.access")


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: Optional[AccessReason]
    is_paid: bool


@dataclass(frozen=True)
class FilmAccessFlags:
    film_id: UUID
    is_paid: bool
    has_access: bool
    purchased: bool
    subscription_active: bool
    reason: Optional[AccessReason]


def _purchase_is_valid(now: datetime):
    return or_(UserPurchasedFilm.expires_at.is_(None), UserPurchasedFilm.expires_at > now)


# ──────────────────────────────────────────────────────────────
# 🎟️ Entitlement reads
# ──────────────────────────────────────────────────────────────
async def has_active_subscription(db: AsyncSession, user_id: UUID, *, clock: Clock = system_clock) -> bool:
    await update_expired_subscriptions(db, user_id, clock=clock)
    row = await db.execute(
        select(Subscription.id)
        .where(Subscription.user_id == user_id, Subscription.status == SubscriptionStatus.ACTIVE)
        .limit(1)
    )
    return row.first() is not None


async def has_user_purchased_film(
    db: AsyncSession,
    user_id: UUID,
    film_id: UUID,
    *,
    clock: Clock = system_clock,
) -> bool:
    row = await db.execute(
        select(UserPurchasedFilm.id)
        .where(
            UserPurchasedFilm.user_id == user_id,
            UserPurchasedFilm.film_id == film_id,
            _purchase_is_valid(clock.now()),
        )
        .limit(1)
    )
    return row.first() is not None


async def get_user_subscription(
    db: AsyncSession,
    user_id: UUID,
    *,
    clock: Clock = system_clock,
) -> Optional[Subscription]:
    """The user's subscription with the furthest `expires_at` (any status), plan loaded."""
    await update_expired_subscriptions(db, user_id, clock=clock)
    result = await db.execute(
        select(Subscription)
        .where(Subscription.user_id == user_id)
        .order_by(Subscription.expires_at.desc(), Subscription.created_at.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def list_purchased_films(
    db: AsyncSession,
    user_id: UUID,
    *,
    clock: Clock = system_clock,
) -> List[Dict[str, object]]:
    """Valid film purchases joined with the film, newest first."""
    rows = await db.execute(
        select(UserPurchasedFilm, Film.name)
        .join(Film, Film.id == UserPurchasedFilm.film_id)
        .where(UserPurchasedFilm.user_id == user_id, _purchase_is_valid(clock.now()))
        .order_by(UserPurchasedFilm.purchased_at.desc())
    )
    return [
        {
            "film_id": purchase.film_id,
            "name": name,
            "order_id": purchase.order_id,
            "purchased_at": purchase.purchased_at,
            "expires_at": purchase.expires_at,
        }
        for purchase, name in rows.all()
    ]


# ──────────────────────────────────────────────────────────────
# 🚦 Decisions
# ──────────────────────────────────────────────────────────────
async def decide_film_access(
    db: AsyncSession,
    user_id: Optional[UUID],
    film: Film,
    *,
    clock: Clock = system_clock,
) -> AccessDecision:
    if not film.is_paid:
        return AccessDecision(allowed=True, reason=AccessReason.PUBLIC, is_paid=False)
    if user_id is None:
        return AccessDecision(allowed=False, reason=None, is_paid=True)

    if await has_active_subscription(db, user_id, clock=clock):
        return AccessDecision(allowed=True, reason=AccessReason.SUBSCRIPTION, is_paid=True)
    if await has_user_purchased_film(db, user_id, film.id, clock=clock):
        return AccessDecision(allowed=True, reason=AccessReason.PURCHASE, is_paid=True)

    logger.info("Access denied | user_id=%s film_id=%s", user_id, film.id)
    return AccessDecision(allowed=False, reason=None, is_paid=True)


async def film_access_flags(
    db: AsyncSession,
    user_id: UUID,
    film_ids: Iterable[UUID],
    *,
    clock: Clock = system_clock,
) -> List[FilmAccessFlags]:
    """Batch flags for catalogue listings; unknown film ids are skipped."""
    ids = list(dict.fromkeys(film_ids))
    if not ids:
        return []

    films = (await db.execute(select(Film).where(Film.id.in_(ids)))).scalars().all()
    by_id = {f.id: f for f in films}

    subscription_active = await has_active_subscription(db, user_id, clock=clock)
    purchased_rows = await db.execute(
        select(UserPurchasedFilm.film_id).where(
            UserPurchasedFilm.user_id == user_id,
            UserPurchasedFilm.film_id.in_(ids),
            _purchase_is_valid(clock.now()),
        )
    )
    purchased = set(purchased_rows.scalars().all())

    flags: List[FilmAccessFlags] = []
    for film_id in ids:
        film = by_id.get(film_id)
        if film is None:
            continue
        if not film.is_paid:
            reason: Optional[AccessReason] = AccessReason.PUBLIC
        elif subscription_active:
            reason = AccessReason.SUBSCRIPTION
        elif film_id in purchased:
            reason = AccessReason.PURCHASE
        else:
            reason = None
        flags.append(
            FilmAccessFlags(
                film_id=film_id,
                is_paid=bool(film.is_paid),
                has_access=reason is not None,
                purchased=film_id in purchased,
                subscription_active=subscription_active,
                reason=reason,
            )
        )
    return flags


__all__ = [
    "AccessDecision",
    "FilmAccessFlags",
    "has_active_subscription",
    "has_user_purchased_film",
    "get_user_subscription",
    "list_purchased_films",
    "decide_film_access",
    "film_access_flags",
]
