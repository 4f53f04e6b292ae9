from __future__ import annotations

"""
📦 CinePass — SubscriptionPlan
==============================

Catalog of purchasable plans. Once an order references a plan its
`duration_days` is baked into the granted subscription; later edits never
reach existing subscriptions.
"""

from uuid import uuid4

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String, Text, Uuid, func, true

from app.db.base_class import Base, Money


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Money(), nullable=False)
    currency = Column(String(3), nullable=False, default="RUB", server_default="RUB")
    duration_days = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __mapper_args__ = {"eager_defaults": True}

    __table_args__ = (
        CheckConstraint("duration_days > 0", name="duration_positive"),
        CheckConstraint("price >= 0", name="price_non_negative"),
    )
