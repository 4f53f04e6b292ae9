from __future__ import annotations

"""
Central enum definitions used across CinePass.

Design notes
------------
• All enums subclass `str, PyEnum` for JSON-friendly serialization.
• VALUE STRINGS are **stable** once deployed (DB enums store the values).
"""

from enum import Enum as PyEnum
from typing import Optional


# ──────────────────────────────────────────────────────────────
# Orders
# ──────────────────────────────────────────────────────────────
class OrderType(str, PyEnum):
    """What an order buys."""
    SUBSCRIPTION = "subscription"
    FILM = "film"


class OrderStatus(str, PyEnum):
    """Order lifecycle: pending → paid | cancelled | failed."""
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"
    FAILED = "failed"


# ──────────────────────────────────────────────────────────────
# Entitlements
# ──────────────────────────────────────────────────────────────
class SubscriptionStatus(str, PyEnum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class AccessReason(str, PyEnum):
    """Why a film is watchable."""
    PUBLIC = "public"
    SUBSCRIPTION = "subscription"
    PURCHASE = "purchase"


# ──────────────────────────────────────────────────────────────
# Gateway
# ──────────────────────────────────────────────────────────────
class GatewayPaymentStatus(str, PyEnum):
    """Payment statuses reported by the provider."""
    PENDING = "pending"
    WAITING_FOR_CAPTURE = "waiting_for_capture"
    SUCCEEDED = "succeeded"
    CANCELED = "canceled"


_GATEWAY_TO_ORDER = {
    GatewayPaymentStatus.SUCCEEDED.value: OrderStatus.PAID,
    GatewayPaymentStatus.CANCELED.value: OrderStatus.CANCELLED,
    GatewayPaymentStatus.PENDING.value: OrderStatus.PENDING,
    GatewayPaymentStatus.WAITING_FOR_CAPTURE.value: OrderStatus.PENDING,
}


def map_gateway_status(status: Optional[str]) -> OrderStatus:
    """Provider status → order status; anything unrecognised is a failure."""
    return _GATEWAY_TO_ORDER.get((status or "").strip().lower(), OrderStatus.FAILED)


__all__ = [
    "OrderType",
    "OrderStatus",
    "SubscriptionStatus",
    "AccessReason",
    "GatewayPaymentStatus",
    "map_gateway_status",
]
