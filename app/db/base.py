# app/db/base.py
"""
CinePass — SQLAlchemy Base registry
===================================

Import all ORM models so their tables are registered on `Base.metadata`
(Alembic autogeneration, test `create_all`, relationship resolution).

Keep this file import-only; no runtime logic.
"""

from app.db.base_class import Base

# ───────────────────────────────────────────────────────────────
# Accounts & catalog (read by the core)
# ───────────────────────────────────────────────────────────────
from app.db.models.user import User
from app.db.models.film import Film
from app.db.models.subscription_plan import SubscriptionPlan

# ───────────────────────────────────────────────────────────────
# Commerce: orders and entitlements
# ───────────────────────────────────────────────────────────────
from app.db.models.order import Order
from app.db.models.subscription import Subscription
from app.db.models.user_purchased_film import UserPurchasedFilm

__all__ = [
    "Base",
    "User",
    "Film",
    "SubscriptionPlan",
    "Order",
    "Subscription",
    "UserPurchasedFilm",
]
