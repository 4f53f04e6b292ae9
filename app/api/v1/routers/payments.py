# ╔══════════════════════════════════════════════════════════════════════════╗
# ║ CinePass · Payments API                                                  ║
# ╠──────────────────────────────────────────────────────────────────────────╣
# ║ Endpoints:                                                               ║
# ║  - POST /payments/subscription  → checkout for a subscription plan       ║
# ║  - POST /payments/film          → checkout for a single film             ║
# ║  - POST /payments/webhook       → provider notification (no auth)        ║
# ╠──────────────────────────────────────────────────────────────────────────╣
# ║ Webhook contract                                                         ║
# ║  - 200 {received: true}   processed, or unknown payment acknowledged     ║
# ║  - 400 {error}            malformed payload / metadata mismatch          ║
# ║  - 401 {error}            HMAC signature check failed (when configured)  ║
# ║  - 500 {error}            processing failure (logged; provider retries)  ║
# ╚══════════════════════════════════════════════════════════════════════════╝
import logging

from fastapi import APIRouter, Body, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.http_utils import json_no_store, verify_webhook_signature
from app.core.clock import Clock, get_clock
from app.core.config import settings
from app.core.exceptions import WebhookPayloadError
from app.core.limiter import rate_limit, rate_limit_exempt
from app.core.security import CallerContext, get_caller
from app.db.session import get_async_db
from app.schemas.payments import (
    CheckoutOut,
    FilmPaymentRequest,
    SubscriptionPaymentRequest,
    WebhookAck,
    WebhookNotification,
)
from app.services.order_service import create_film_payment, create_subscription_payment
from app.services.payment_gateway import PaymentGateway, get_payment_gateway
from app.services.reconciliation_service import handle_webhook

router = APIRouter(prefix="/payments", tags=["Payments"])
logger = logging.getLogger("payments.webhook")

SIGNATURE_HEADER = "X-Signature"


# ──────────────────────────────────────────────────────────────
# 🛒 Checkout
# ──────────────────────────────────────────────────────────────
@router.post("/subscription", response_model=CheckoutOut, summary="Start a subscription checkout")
@rate_limit("10/minute")
async def pay_subscription(
    request: Request,
    response: Response,
    payload: SubscriptionPaymentRequest = Body(...),
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    clock: Clock = Depends(get_clock),
):
    result = await create_subscription_payment(
        db, caller, payload.plan_id, gateway=gateway, clock=clock, return_url=payload.return_url
    )
    body = CheckoutOut(message="Payment created", payment_url=result.payment_url, order_id=result.order.id)
    return json_no_store(body.model_dump(), response=response)


@router.post("/film", response_model=CheckoutOut, summary="Start a film purchase checkout")
@rate_limit("10/minute")
async def pay_film(
    request: Request,
    response: Response,
    payload: FilmPaymentRequest = Body(...),
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    clock: Clock = Depends(get_clock),
):
    result = await create_film_payment(
        db, caller, payload.film_id, gateway=gateway, clock=clock, return_url=payload.return_url
    )
    body = CheckoutOut(message="Payment created", payment_url=result.payment_url, order_id=result.order.id)
    return json_no_store(body.model_dump(), response=response)


# ──────────────────────────────────────────────────────────────
# 🔔 Webhook
# ──────────────────────────────────────────────────────────────
@router.post("/webhook", response_model=WebhookAck, summary="Payment provider notification")
@rate_limit_exempt()
async def payment_webhook(
    request: Request,
    db: AsyncSession = Depends(get_async_db),
    clock: Clock = Depends(get_clock),
):
    raw = await request.body()

    if not verify_webhook_signature(raw, request.headers.get(SIGNATURE_HEADER), settings.payment_webhook_secrets):
        logger.warning("Webhook signature rejected")
        return JSONResponse(status_code=401, content={"error": "Invalid signature"})

    try:
        notification = WebhookNotification.model_validate_json(raw)
    except ValidationError:
        logger.warning("Malformed webhook payload")
        return JSONResponse(status_code=400, content={"error": "Malformed notification"})

    try:
        await handle_webhook(db, notification, clock=clock)
    except WebhookPayloadError as exc:
        return JSONResponse(status_code=400, content={"error": exc.message})
    except Exception:
        logger.exception("Webhook processing failed | payment_id=%s", notification.object.id)
        await db.rollback()
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})

    return WebhookAck()


__all__ = ["router"]
