from __future__ import annotations

"""
Order shapes.

Paid orders
-----------
`SubscriptionOrder | FilmOrder` (discriminated on `type`) is the one shape
that identifies what a successful payment buys. It is:

• written to the gateway as payment metadata (camelCase aliases),
• parsed back from webhook metadata (`type` inferred when absent),
• rebuilt from an order row on the poll path.

Order requests
--------------
The HTTP body is flat (`plan_id?`, `film_id?`); `CreateOrderBody.to_typed()`
turns it into `SubscriptionOrderRequest | FilmOrderRequest` and rejects
bodies naming both targets or neither.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Mapping, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, constr

from app.core.exceptions import OrderValidationError
from app.schemas.enums import OrderStatus, OrderType


# ──────────────────────────────────────────────────────────────
# 🏷️ Paid-order union
# ──────────────────────────────────────────────────────────────
class SubscriptionOrder(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["subscription"] = "subscription"
    order_id: UUID = Field(alias="orderId")
    user_id: UUID = Field(alias="userId")
    plan_id: UUID = Field(alias="planId")


class FilmOrder(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["film"] = "film"
    order_id: UUID = Field(alias="orderId")
    user_id: UUID = Field(alias="userId")
    film_id: UUID = Field(alias="filmId")


PaidOrder = Annotated[Union[SubscriptionOrder, FilmOrder], Field(discriminator="type")]
_paid_order_adapter: TypeAdapter = TypeAdapter(PaidOrder)


def parse_paid_order(metadata: Mapping[str, Any]) -> Union[SubscriptionOrder, FilmOrder]:
    """Validate gateway metadata into a paid order; raises `pydantic.ValidationError`."""
    data = dict(metadata)
    if not data.get("type"):
        if data.get("planId") or data.get("plan_id"):
            data["type"] = OrderType.SUBSCRIPTION.value
        elif data.get("filmId") or data.get("film_id"):
            data["type"] = OrderType.FILM.value
    return _paid_order_adapter.validate_python(data)


def paid_order_from_row(order: Any) -> Union[SubscriptionOrder, FilmOrder]:
    """Rebuild the paid-order shape from a persisted `Order` row."""
    if order.order_type == OrderType.SUBSCRIPTION:
        return SubscriptionOrder(order_id=order.id, user_id=order.user_id, plan_id=order.plan_id)
    if order.order_type == OrderType.FILM:
        return FilmOrder(order_id=order.id, user_id=order.user_id, film_id=order.film_id)
    raise TypeError(f"Unsupported order type: {order.order_type!r}")


def gateway_metadata(order: Union[SubscriptionOrder, FilmOrder]) -> dict:
    return order.model_dump(by_alias=True, mode="json")


# ──────────────────────────────────────────────────────────────
# 📝 Order requests
# ──────────────────────────────────────────────────────────────
class _OrderRequestBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    currency: Optional[constr(strip_whitespace=True, to_upper=True, min_length=3, max_length=3)] = None
    return_url: Optional[constr(strip_whitespace=True, max_length=2048)] = None


class SubscriptionOrderRequest(_OrderRequestBase):
    type: Literal["subscription"] = "subscription"
    plan_id: UUID


class FilmOrderRequest(_OrderRequestBase):
    type: Literal["film"] = "film"
    film_id: UUID


OrderRequest = Annotated[Union[SubscriptionOrderRequest, FilmOrderRequest], Field(discriminator="type")]


class CreateOrderBody(BaseModel):
    """Raw `POST /orders` body."""

    plan_id: Optional[UUID] = None
    film_id: Optional[UUID] = None
    amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    currency: Optional[constr(strip_whitespace=True, to_upper=True, min_length=3, max_length=3)] = None
    return_url: Optional[constr(strip_whitespace=True, max_length=2048)] = None

    def to_typed(self) -> Union[SubscriptionOrderRequest, FilmOrderRequest]:
        if self.plan_id and self.film_id:
            raise OrderValidationError("Specify either plan_id or film_id, not both", reason="ORDER_TARGET_AMBIGUOUS")
        common = {"amount": self.amount, "currency": self.currency, "return_url": self.return_url}
        if self.plan_id:
            return SubscriptionOrderRequest(plan_id=self.plan_id, **common)
        if self.film_id:
            return FilmOrderRequest(film_id=self.film_id, **common)
        raise OrderValidationError("Either plan_id or film_id is required", reason="ORDER_TARGET_MISSING")


# ──────────────────────────────────────────────────────────────
# 📤 Responses
# ──────────────────────────────────────────────────────────────
class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    order_type: OrderType
    plan_id: Optional[UUID] = None
    film_id: Optional[UUID] = None
    amount: Decimal
    currency: str
    order_status: OrderStatus
    payment_method: str
    external_payment_id: Optional[str] = None
    created_at: datetime
    paid_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class OrderPage(BaseModel):
    items: list[OrderOut]
    limit: int
    offset: int


class OrderCheckOut(BaseModel):
    """Result of reconciling an order against the gateway."""

    checked: bool
    message: str
    gateway_status: Optional[str] = None
    granted: bool = False
    already_granted: bool = False
    order: OrderOut


class OrderCreatedOut(BaseModel):
    order: OrderOut
    payment_url: Optional[str] = None


__all__ = [
    "SubscriptionOrder",
    "FilmOrder",
    "PaidOrder",
    "parse_paid_order",
    "paid_order_from_row",
    "gateway_metadata",
    "SubscriptionOrderRequest",
    "FilmOrderRequest",
    "OrderRequest",
    "CreateOrderBody",
    "OrderOut",
    "OrderPage",
    "OrderCheckOut",
    "OrderCreatedOut",
]
