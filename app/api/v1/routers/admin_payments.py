# ╔══════════════════════════════════════════════════════════════════════════╗
# ║ CinePass · Admin Payments & Entitlements                                 ║
# ╠──────────────────────────────────────────────────────────────────────────╣
# ║  - GET  /admin/orders                    → filterable order listing      ║
# ║  - POST /admin/subscriptions/grant       → manual subscription grant     ║
# ║  - POST /admin/subscriptions/expire      → run the expiry sweep now      ║
# ║  - POST /admin/videos/{film_id}/token    → token without access check    ║
# ╚══════════════════════════════════════════════════════════════════════════╝
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Path, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.http_utils import json_no_store
from app.core.clock import Clock, get_clock
from app.core.limiter import rate_limit
from app.core.security import CallerContext
from app.db.session import get_async_db
from app.dependencies.admin import admin_caller
from app.schemas.enums import OrderStatus
from app.schemas.orders import OrderOut, OrderPage
from app.schemas.subscriptions import ExpirySweepOut, ManualGrantRequest, SubscriptionOut
from app.schemas.video import VideoTokenOut
from app.services.entitlement_service import grant_manual_subscription
from app.services.expiry_service import expire_stale_orders, update_all_expired_subscriptions
from app.services.order_service import list_orders
from app.services.video_token_service import (
    VideoAccessTokenCache,
    build_stream_url,
    get_video_token_cache,
    issue_video_token,
)

router = APIRouter(prefix="/admin", tags=["Admin"])
logger = logging.getLogger("admin")


@router.get("/orders", response_model=OrderPage, summary="List orders")
async def admin_list_orders(
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    user_id: Optional[UUID] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    _admin: CallerContext = Depends(admin_caller),
    db: AsyncSession = Depends(get_async_db),
):
    orders = await list_orders(db, status=order_status, user_id=user_id, limit=limit, offset=offset)
    page = OrderPage(items=[OrderOut.model_validate(o) for o in orders], limit=limit, offset=offset)
    return json_no_store(page.model_dump())


@router.post(
    "/subscriptions/grant",
    response_model=SubscriptionOut,
    status_code=status.HTTP_201_CREATED,
    summary="Grant a subscription manually",
)
@rate_limit("20/minute")
async def admin_grant_subscription(
    request: Request,
    response: Response,
    payload: ManualGrantRequest = Body(...),
    admin: CallerContext = Depends(admin_caller),
    db: AsyncSession = Depends(get_async_db),
    clock: Clock = Depends(get_clock),
):
    subscription = await grant_manual_subscription(
        db,
        user_id=payload.user_id,
        plan_id=payload.plan_id,
        duration_days=payload.duration_days,
        clock=clock,
    )
    logger.info("Admin %s granted subscription %s to %s", admin.user_id, subscription.id, payload.user_id)
    return json_no_store(
        SubscriptionOut.model_validate(subscription).model_dump(),
        status_code=status.HTTP_201_CREATED,
        response=response,
    )


@router.post("/subscriptions/expire", response_model=ExpirySweepOut, summary="Run the expiry sweep now")
@rate_limit("5/minute")
async def admin_run_expiry(
    request: Request,
    response: Response,
    admin: CallerContext = Depends(admin_caller),
    db: AsyncSession = Depends(get_async_db),
    clock: Clock = Depends(get_clock),
):
    subscriptions = await update_all_expired_subscriptions(db, clock=clock)
    orders = await expire_stale_orders(db, clock=clock)
    logger.info("Admin %s ran expiry sweep | subscriptions=%s orders=%s", admin.user_id, subscriptions, orders)
    return json_no_store(ExpirySweepOut(subscriptions=subscriptions, orders=orders).model_dump(), response=response)


@router.post("/videos/{film_id}/token", response_model=VideoTokenOut, summary="Issue a token without access check")
async def admin_issue_video_token(
    film_id: UUID = Path(...),
    admin: CallerContext = Depends(admin_caller),
    db: AsyncSession = Depends(get_async_db),
    cache: VideoAccessTokenCache = Depends(get_video_token_cache),
    clock: Clock = Depends(get_clock),
):
    issued, film = await issue_video_token(db, cache, admin, film_id, clock=clock, check_access=False)
    body = VideoTokenOut(
        token=issued.token,
        token_id=issued.token_id,
        film_id=film.id,
        stream_url=build_stream_url(film.id, issued.token),
        expires_in=issued.expires_in,
        film_name=film.name,
    )
    return json_no_store(body.model_dump(by_alias=True))


__all__ = ["router"]
