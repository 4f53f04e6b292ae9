# ╔══════════════════════════════════════════════════════════════════════════╗
# ║ CinePass · Orders API                                                    ║
# ╠──────────────────────────────────────────────────────────────────────────╣
# ║  - POST /orders              → create an order from a raw request        ║
# ║  - GET  /orders              → caller's orders, newest first             ║
# ║  - GET  /orders/{id}         → one order (auto-polls pending payments)   ║
# ║  - POST /orders/{id}/check   → reconcile with the payment provider now   ║
# ╚══════════════════════════════════════════════════════════════════════════╝
import logging
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Path, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.http_utils import json_no_store
from app.core.clock import Clock, get_clock
from app.core.exceptions import PaymentGatewayError
from app.core.limiter import rate_limit
from app.core.security import CallerContext, get_caller
from app.db.session import get_async_db
from app.schemas.enums import OrderStatus
from app.schemas.orders import CreateOrderBody, OrderCheckOut, OrderCreatedOut, OrderOut, OrderPage
from app.services.order_service import get_user_order, list_user_orders, start_checkout
from app.services.payment_gateway import PaymentGateway, get_payment_gateway
from app.services.reconciliation_service import PollOutcome, check_and_process_order

router = APIRouter(prefix="/orders", tags=["Orders"])
logger = logging.getLogger("payments.orders")


def _check_body(outcome: PollOutcome) -> dict:
    grant = outcome.grant
    return OrderCheckOut(
        checked=outcome.checked,
        message=outcome.message,
        gateway_status=outcome.gateway_status,
        granted=bool(grant and grant.granted),
        already_granted=bool(grant and grant.already_granted),
        order=OrderOut.model_validate(outcome.order),
    ).model_dump()


@router.post("", response_model=OrderCreatedOut, status_code=status.HTTP_201_CREATED, summary="Create order")
@rate_limit("10/minute")
async def create_order_route(
    request: Request,
    response: Response,
    payload: CreateOrderBody = Body(...),
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    clock: Clock = Depends(get_clock),
):
    result = await start_checkout(db, caller, payload.to_typed(), gateway=gateway, clock=clock)
    body = OrderCreatedOut(order=OrderOut.model_validate(result.order), payment_url=result.payment_url)
    return json_no_store(body.model_dump(), status_code=status.HTTP_201_CREATED, response=response)


@router.get("", response_model=OrderPage, summary="List my orders")
async def list_my_orders(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
):
    orders = await list_user_orders(db, caller, limit=limit, offset=offset)
    page = OrderPage(items=[OrderOut.model_validate(o) for o in orders], limit=limit, offset=offset)
    return json_no_store(page.model_dump())


@router.get("/{order_id}", response_model=OrderOut, summary="Get one order")
async def get_order(
    order_id: UUID = Path(...),
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    clock: Clock = Depends(get_clock),
):
    """A pending order with a provider payment is reconciled on read; provider
    outages degrade to returning the stored state."""
    order = await get_user_order(db, caller, order_id)
    if order.order_status == OrderStatus.PENDING and order.external_payment_id:
        try:
            outcome = await check_and_process_order(db, caller, order_id, gateway=gateway, clock=clock)
            order = outcome.order
        except PaymentGatewayError as exc:
            logger.warning("Auto-poll skipped | order_id=%s | %s", order_id, exc.message)
    return json_no_store(OrderOut.model_validate(order).model_dump())


@router.post("/{order_id}/check", response_model=OrderCheckOut, summary="Reconcile with the provider")
@rate_limit("20/minute")
async def check_order(
    request: Request,
    response: Response,
    order_id: UUID = Path(...),
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    clock: Clock = Depends(get_clock),
):
    outcome = await check_and_process_order(db, caller, order_id, gateway=gateway, clock=clock)
    return json_no_store(_check_body(outcome), response=response)


__all__ = ["router"]
