from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, conint

from app.schemas.enums import AccessReason, SubscriptionStatus


class PlanOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: Optional[str] = None
    price: Decimal
    currency: str
    duration_days: int


class SubscriptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    plan_id: UUID
    order_id: Optional[UUID] = None
    status: SubscriptionStatus
    started_at: datetime
    expires_at: datetime
    auto_renew: bool
    plan: Optional[PlanOut] = None


class MySubscriptionOut(BaseModel):
    subscription: Optional[SubscriptionOut] = None
    has_active_subscription: bool


class PurchasedFilmOut(BaseModel):
    film_id: UUID
    name: str
    order_id: UUID
    purchased_at: datetime
    expires_at: Optional[datetime] = None


class ManualGrantRequest(BaseModel):
    user_id: UUID
    plan_id: UUID
    duration_days: Optional[conint(ge=1, le=3650)] = None


class ExpirySweepOut(BaseModel):
    subscriptions: int
    orders: int


class FilmAccessOut(BaseModel):
    film_id: UUID
    is_paid: bool
    has_access: bool
    purchased: bool
    subscription_active: bool
    reason: Optional[AccessReason] = None


class FilmAccessList(BaseModel):
    items: List[FilmAccessOut]
