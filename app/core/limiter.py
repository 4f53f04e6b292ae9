from __future__ import annotations

"""
CinePass — HTTP Rate Limiting (SlowAPI)
=======================================

Highlights
----------
- **User/IP aware** keying: per-user when the caller dependency sets
  `request.state.user_id`, else per-client-IP (XFF / X-Real-IP / client.host).
- **Exemptions**: health probes, the payment webhook (provider retries must
  never be throttled), configurable trusted IPs.
- **Test/CI friendly**: `RATE_LIMIT_TEST_BYPASS=1` disables limits; the
  `X-RateLimit-Bypass: 1` header exempts a single request.
- **Backends**: `settings.ratelimit_storage` (Redis URI or `memory://`).

Usage
-----
    from app.core.limiter import install_rate_limiter, rate_limit

    install_rate_limiter(app)

    @router.post("/payments/film")
    @rate_limit("10/minute")
    async def create_film_payment(request: Request, response: Response, ...): ...

Limited endpoints must accept `request: Request` and `response: Response`
(SlowAPI injects the `X-RateLimit-*` headers into the latter).
"""

import os
from typing import Callable, List, Optional, Set

from loguru import logger
from slowapi import Limiter
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.requests import Request

from app.core.config import settings

# ──────────────────────────────────────────────────────────────
# ⚙️ Environment & defaults
# ──────────────────────────────────────────────────────────────
_TRUTHY = {"1", "true", "yes", "on"}

STRATEGY = os.getenv("RATELIMIT_STRATEGY", "moving-window").strip()
BYPASS_HEADER = os.getenv("RATE_LIMIT_BYPASS_HEADER", "X-RateLimit-Bypass")
SKIP_PATHS: List[str] = [
    p.strip()
    for p in os.getenv(
        "RATE_LIMIT_SKIP_PATHS",
        f"/healthz,/readyz,/docs,/openapi.json,{settings.API_V1_STR}/payments/webhook",
    ).split(",")
    if p.strip()
]
TRUSTED_IPS: Set[str] = {ip.strip() for ip in os.getenv("RATE_LIMIT_TRUSTED_IPS", "").split(",") if ip.strip()}


def _enabled() -> bool:
    # Read at request time so tests can toggle without re-importing.
    return os.getenv("RATE_LIMIT_ENABLED", "true").strip().lower() in _TRUTHY


def _test_bypass() -> bool:
    return os.getenv("RATE_LIMIT_TEST_BYPASS", "").strip().lower() in _TRUTHY


# ──────────────────────────────────────────────────────────────
# 🧠 Keying & exemptions
# ──────────────────────────────────────────────────────────────
def _client_ip(request: Request) -> str:
    xff = request.headers.get("x-forwarded-for")
    if xff:
        ip = xff.split(",")[0].strip()
        if ip:
            return ip
    xri = request.headers.get("x-real-ip")
    if xri:
        return xri.strip()
    return get_remote_address(request) or "unknown"


def get_user_rate_limit_key(request: Request) -> str:
    """`user:<id>` once the caller is resolved, `ip:<addr>` otherwise."""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return f"ip:{_client_ip(request)}"


def should_exempt_request(request: Optional[Request]) -> bool:
    if not _enabled() or _test_bypass():
        return True
    if request is None:
        return False
    if request.headers.get(BYPASS_HEADER, "").strip().lower() in _TRUTHY:
        return True
    path = request.url.path
    if any(path == p or path.startswith(p.rstrip("/") + "/") for p in SKIP_PATHS):
        return True
    return _client_ip(request) in TRUSTED_IPS


# ──────────────────────────────────────────────────────────────
# 🧰 Limiter instance
# ──────────────────────────────────────────────────────────────
def _default_limits() -> List[str]:
    return [chunk.strip() for chunk in (settings.DEFAULT_RATE_LIMIT or "100/minute").split(",") if chunk.strip()]


limiter = Limiter(
    key_func=get_user_rate_limit_key,
    default_limits=_default_limits(),
    headers_enabled=True,
    storage_uri=settings.ratelimit_storage or "memory://",
    strategy=STRATEGY,
    enabled=_enabled(),
)


# ──────────────────────────────────────────────────────────────
# 🎛 Decorators
# ──────────────────────────────────────────────────────────────
def _exempt_when(request: Optional[Request] = None) -> bool:
    return should_exempt_request(request)


def rate_limit(*limits: str) -> Callable:
    """
    Apply per-route limits with CinePass exemptions.

    @rate_limit("10/minute")
    @rate_limit("5/second", "100/minute")
    """
    selected = list(limits) if limits else _default_limits()
    decorators = [limiter.limit(value, exempt_when=_exempt_when) for value in selected]

    def _apply(fn: Callable) -> Callable:
        for deco in reversed(decorators):
            fn = deco(fn)
        return fn

    return _apply


def rate_limit_exempt() -> Callable:
    """Exempt a route from the default limits applied by the middleware."""
    return limiter.exempt


# ──────────────────────────────────────────────────────────────
# 🔧 Installer
# ──────────────────────────────────────────────────────────────
def install_rate_limiter(app) -> None:
    """Attach the limiter to app state and install SlowAPI middleware."""
    app.state.limiter = limiter
    if not _enabled():
        logger.info("RateLimiter disabled by env; middleware not installed")
        return
    app.add_middleware(SlowAPIMiddleware)
    logger.info("SlowAPI middleware installed | default={} storage={}", _default_limits(), settings.ratelimit_storage)


__all__ = ["limiter", "rate_limit", "rate_limit_exempt", "install_rate_limiter", "get_user_rate_limit_key", "should_exempt_request"]
