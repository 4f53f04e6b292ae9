from __future__ import annotations

"""
🎬 CinePass — Film (commerce view)
==================================

Only the columns the payment and streaming paths read: visibility, the paid
flag, the price a film order must match, and the relative path of the video
file served by the range-streaming endpoint.

Integrity
---------
• A paid film always carries a price (CHECK `paid_has_price`).
• `price` is `Numeric(10, 2)` and surfaces as `Decimal`.
"""

from uuid import uuid4

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Index, String, Uuid, false, func, true

from app.db.base_class import Base, Money


class Film(Base):
    __tablename__ = "films"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    film_url = Column(String(1024), nullable=True, doc="Path under MEDIA_ROOT, e.g. /uploads/films/x.mp4")

    is_visible = Column(Boolean, nullable=False, default=True, server_default=true())
    is_paid = Column(Boolean, nullable=False, default=False, server_default=false())
    price = Column(Money(), nullable=True)
    currency = Column(String(3), nullable=False, default="RUB", server_default="RUB")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __mapper_args__ = {"eager_defaults": True}

    __table_args__ = (
        CheckConstraint("(NOT is_paid) OR (price IS NOT NULL)", name="paid_has_price"),
        CheckConstraint("(price IS NULL) OR (price >= 0)", name="price_non_negative"),
        Index("ix_films_is_paid", "is_paid"),
    )
