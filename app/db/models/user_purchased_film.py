from __future__ import annotations

"""
🎞️ CinePass — UserPurchasedFilm (per-title entitlement)
=======================================================

One row per paid film order (`order_id` unique). `expires_at` NULL means the
purchase never lapses. A purchase is *valid* while `expires_at` is NULL or in
the future.
"""

from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Index, Uuid

from app.db.base_class import Base


class UserPurchasedFilm(Base):
    __tablename__ = "user_purchased_films"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    film_id = Column(Uuid, ForeignKey("films.id", ondelete="CASCADE"), nullable=False)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True)

    purchased_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_user_purchased_films_user_film", "user_id", "film_id"),
    )
