# ╔══════════════════════════════════════════════════════════════════════════╗
# ║ CinePass · Subscriptions & Access API                                    ║
# ╠──────────────────────────────────────────────────────────────────────────╣
# ║  - GET /subscriptions/plans      → active plans, cheapest first (public) ║
# ║  - GET /subscriptions/me         → current subscription + active flag    ║
# ║  - GET /subscriptions/me/films   → valid film purchases                  ║
# ║  - GET /access/films?ids=...     → per-film access flags                 ║
# ╚══════════════════════════════════════════════════════════════════════════╝
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.http_utils import json_no_store
from app.core.clock import Clock, get_clock
from app.core.security import CallerContext, get_caller
from app.db.session import get_async_db
from app.schemas.subscriptions import (
    FilmAccessList,
    FilmAccessOut,
    MySubscriptionOut,
    PlanOut,
    PurchasedFilmOut,
    SubscriptionOut,
)
from app.services.access_service import (
    film_access_flags,
    get_user_subscription,
    has_active_subscription,
    list_purchased_films,
)
from app.services.order_service import list_active_plans

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])
access_router = APIRouter(prefix="/access", tags=["Access"])


@router.get("/plans", response_model=List[PlanOut], summary="List active plans")
async def get_plans(db: AsyncSession = Depends(get_async_db)):
    plans = await list_active_plans(db)
    return [PlanOut.model_validate(p) for p in plans]


@router.get("/me", response_model=MySubscriptionOut, summary="My subscription")
async def get_my_subscription(
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
    clock: Clock = Depends(get_clock),
):
    subscription = await get_user_subscription(db, caller.user_id, clock=clock)
    active = await has_active_subscription(db, caller.user_id, clock=clock)
    body = MySubscriptionOut(
        subscription=SubscriptionOut.model_validate(subscription) if subscription else None,
        has_active_subscription=active,
    )
    return json_no_store(body.model_dump())


@router.get("/me/films", response_model=List[PurchasedFilmOut], summary="My purchased films")
async def get_my_films(
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
    clock: Clock = Depends(get_clock),
):
    rows = await list_purchased_films(db, caller.user_id, clock=clock)
    return json_no_store([PurchasedFilmOut(**row).model_dump() for row in rows])


@access_router.get("/films", response_model=FilmAccessList, summary="Access flags for films")
async def get_film_access(
    ids: List[UUID] = Query(...),
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
    clock: Clock = Depends(get_clock),
):
    flags = await film_access_flags(db, caller.user_id, ids, clock=clock)
    body = FilmAccessList(
        items=[
            FilmAccessOut(
                film_id=f.film_id,
                is_paid=f.is_paid,
                has_access=f.has_access,
                purchased=f.purchased,
                subscription_active=f.subscription_active,
                reason=f.reason,
            )
            for f in flags
        ]
    )
    return json_no_store(body.model_dump())


__all__ = ["router", "access_router"]
