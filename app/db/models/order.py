from __future__ import annotations

"""
🧾 CinePass — Order (one purchase attempt)
==========================================

An order buys either a subscription plan or a single film and moves through
`pending → paid | cancelled | failed`.

Design highlights
-----------------
• **Exactly one target**: `order_type` agrees with exactly one of
  `plan_id` / `film_id` (CHECK `type_matches_target`).
• **Webhook join key**: `external_payment_id` is the provider's payment id;
  unique once set, never rewritten.
• **Opaque provider payload** in `metadata` (JSONB on PostgreSQL). The ORM
  attribute is `metadata_json` because `metadata` is reserved by declarative.
• **Soft payment deadline**: `expires_at` = creation + payment window; the
  expiry sweep closes pending orders past it.
• `paid_at` is stamped only on the transition to paid.
"""

from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, DateTime, Enum, ForeignKey, Index, String, Uuid, func
from sqlalchemy.orm import relationship

from app.db.base_class import Base, JSONType, Money
from app.schemas.enums import OrderStatus, OrderType


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Order(Base):
    __tablename__ = "orders"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    order_type = Column(
        Enum(OrderType, name="order_type", values_callable=_enum_values),
        nullable=False,
    )
    plan_id = Column(Uuid, ForeignKey("subscription_plans.id", ondelete="RESTRICT"), nullable=True)
    film_id = Column(Uuid, ForeignKey("films.id", ondelete="RESTRICT"), nullable=True)

    amount = Column(Money(), nullable=False)
    currency = Column(String(3), nullable=False)
    order_status = Column(
        Enum(OrderStatus, name="order_status", values_callable=_enum_values),
        nullable=False,
        default=OrderStatus.PENDING,
        server_default=OrderStatus.PENDING.value,
    )
    payment_method = Column(String(32), nullable=False, default="bank_card", server_default="bank_card")
    external_payment_id = Column(String(128), nullable=True, unique=True)
    metadata_json = Column("metadata", JSONType, nullable=True)

    # ── Timestamps ────────────────────────────────────────────────────────────
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    __mapper_args__ = {"eager_defaults": True}

    __table_args__ = (
        CheckConstraint(
            "(order_type = 'subscription' AND plan_id IS NOT NULL AND film_id IS NULL)"
            " OR (order_type = 'film' AND film_id IS NOT NULL AND plan_id IS NULL)",
            name="type_matches_target",
        ),
        CheckConstraint("amount >= 0", name="amount_non_negative"),
        Index("ix_orders_user_created", "user_id", "created_at"),
        Index("ix_orders_status_expires", "order_status", "expires_at"),
    )

    # ── Relationships ─────────────────────────────────────────────────────────
    user = relationship("User", back_populates="orders", lazy="noload")
