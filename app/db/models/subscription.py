from __future__ import annotations

"""
🎟️ CinePass — Subscription (granted access window)
===================================================

• `order_id` is the grant's idempotency key: unique, and NULL only for
  admin-issued manual grants.
• `status` decays `active → expired` purely by time; the flip is done lazily
  on reads and by the daily sweep.
• "One active row per user" is kept operationally (manual grants cancel
  earlier rows), not by a constraint.
"""

from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Index, Uuid, false, func
from sqlalchemy.orm import relationship

from app.db.base_class import Base
from app.schemas.enums import SubscriptionStatus


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    plan_id = Column(Uuid, ForeignKey("subscription_plans.id", ondelete="RESTRICT"), nullable=False)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, unique=True)

    status = Column(
        Enum(SubscriptionStatus, name="subscription_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=SubscriptionStatus.ACTIVE,
        server_default=SubscriptionStatus.ACTIVE.value,
    )
    started_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    auto_renew = Column(Boolean, nullable=False, default=False, server_default=false())

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __mapper_args__ = {"eager_defaults": True}

    __table_args__ = (
        Index("ix_subscriptions_user_status", "user_id", "status"),
        Index("ix_subscriptions_status_expires", "status", "expires_at"),
    )

    plan = relationship("SubscriptionPlan", lazy="selectin")
