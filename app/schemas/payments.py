from __future__ import annotations

"""Checkout requests/responses and the provider's webhook notification."""

from typing import Any, Dict, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, constr


# ──────────────────────────────────────────────────────────────
# 🛒 Checkout
# ──────────────────────────────────────────────────────────────
class SubscriptionPaymentRequest(BaseModel):
    plan_id: UUID
    return_url: Optional[constr(strip_whitespace=True, max_length=2048)] = None


class FilmPaymentRequest(BaseModel):
    film_id: UUID
    return_url: Optional[constr(strip_whitespace=True, max_length=2048)] = None


class CheckoutOut(BaseModel):
    success: bool = True
    message: str
    payment_url: Optional[str] = None
    order_id: UUID


# ──────────────────────────────────────────────────────────────
# 🔔 Webhook
# ──────────────────────────────────────────────────────────────
class WebhookPaymentObject(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: constr(strip_whitespace=True, min_length=1, max_length=128)
    status: constr(strip_whitespace=True, min_length=1, max_length=64)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class WebhookNotification(BaseModel):
    """`{type: "notification", event, object: {id, status, metadata}}`"""

    model_config = ConfigDict(extra="allow")

    type: Literal["notification"]
    event: Optional[str] = None
    object: WebhookPaymentObject


class WebhookAck(BaseModel):
    received: bool = True


__all__ = [
    "SubscriptionPaymentRequest",
    "FilmPaymentRequest",
    "CheckoutOut",
    "WebhookPaymentObject",
    "WebhookNotification",
    "WebhookAck",
]
