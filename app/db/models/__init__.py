# app/db/models/__init__.py
"""
CinePass ORM models.

Importing any model module imports this package first, which registers every
mapped class so string-based relationships resolve regardless of which model
a caller touched first.
"""

from .user import User
from .film import Film
from .subscription_plan import SubscriptionPlan
from .order import Order
from .subscription import Subscription
from .user_purchased_film import UserPurchasedFilm

__all__ = [
    "User",
    "Film",
    "SubscriptionPlan",
    "Order",
    "Subscription",
    "UserPurchasedFilm",
]
