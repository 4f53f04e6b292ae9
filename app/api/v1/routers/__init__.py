"""
🧭 CinePass • API v1 Router Aggregator
======================================

Exports the **combined `router`** and a `build_v1_router()` factory.

Layout
------
- `/payments/*`       checkout + provider webhook
- `/orders/*`         order lifecycle and reconciliation
- `/subscriptions/*`  plans, my subscription, my films
- `/access/*`         per-film access flags
- `/videos/*`         capability tokens and streaming
- `/admin/*`          manual grants, sweeps, order listing

Auth and rate limits live in the child routers.
"""

from fastapi import APIRouter

from .admin_payments import router as admin_router
from .orders import router as orders_router
from .payments import router as payments_router
from .subscriptions import access_router
from .subscriptions import router as subscriptions_router
from .videos import router as videos_router


def build_v1_router() -> APIRouter:
    r = APIRouter()
    r.include_router(payments_router)
    r.include_router(orders_router)
    r.include_router(subscriptions_router)
    r.include_router(access_router)
    r.include_router(videos_router)
    r.include_router(admin_router)
    return r


router = build_v1_router()

__all__ = [
    "router",
    "build_v1_router",
    "payments_router",
    "orders_router",
    "subscriptions_router",
    "access_router",
    "videos_router",
    "admin_router",
]
