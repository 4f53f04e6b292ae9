from __future__ import annotations

"""
👤 CinePass — User
==================

Account entity as far as the payment/entitlement core needs it: identity,
the active flag checked on every authenticated request, and the admin flag
that unlocks manual grants, order listings and sweep triggers.

Credentials and OTP login live in the account service; this table is read,
never written, by the core.
"""

from uuid import uuid4

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, String, Uuid, false, func, true
from sqlalchemy.orm import relationship

from app.db.base_class import Base


class User(Base):
    __tablename__ = "users"

    # ── Identity ──────────────────────────────────────────────────────────────
    id = Column(Uuid, primary_key=True, default=uuid4)
    email = Column(String(320), nullable=False, unique=True)
    full_name = Column(String(255), nullable=True)

    # ── Flags ─────────────────────────────────────────────────────────────────
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    is_admin = Column(Boolean, nullable=False, default=False, server_default=false())

    # ── Timestamps ────────────────────────────────────────────────────────────
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __mapper_args__ = {"eager_defaults": True}

    __table_args__ = (
        CheckConstraint("length(trim(email)) > 0", name="email_not_blank"),
    )

    # ── Relationships ─────────────────────────────────────────────────────────
    orders = relationship(
        "Order",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="noload",
    )
