# app/main.py
from __future__ import annotations

"""
# CinePass API — Application Entrypoint (FastAPI)

ASGI application factory and lifecycle for the payment, entitlement and
streaming-access backend.

## Lifespan
Startup:
  1) configure loguru (stdlib intercept)
  2) best-effort Redis connect (locks, JTI lanes, rate-limit storage)
  3) payment gateway from settings → `app.state.payment_gateway`
  4) video token cache → `app.state.video_tokens`, GC task started
  5) daily expiry sweep → `app.state.expiry_task` (when enabled)
Shutdown reverses it and disposes the DB engine.

## Middleware order
request id → CORS → rate limits.

## Probes
- `/healthz` — liveness (process up).
- `/readyz` — readiness (DB + Redis).
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from app.core.clock import Clock, system_clock
from app.core.config import settings
from app.core.exception_handlers import (
    global_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from app.core.limiter import install_rate_limiter, rate_limit_exempt
from app.core.logger import configure_logging
from app.core.redis_client import redis_wrapper
from app.db.session import async_engine, db_healthcheck
from app.middleware.request_id import RequestIDMiddleware
from app.services.expiry_service import build_expiry_task
from app.services.payment_gateway import build_payment_gateway
from app.services.video_token_service import VideoAccessTokenCache

logger = logging.getLogger("cinepass")


# ─────────────────────────────────────────────────────────────────────────────
# 🔄 Lifespan: startup & shutdown
# ─────────────────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging()
    logger.info("CinePass API starting up | env=%s", settings.ENV)

    try:
        await redis_wrapper.connect()
        logger.info("Redis connected")
    except Exception:
        logger.exception("Redis connect failed (continuing in degraded mode)")

    clock: Clock = getattr(app.state, "clock", None) or system_clock
    app.state.clock = clock

    if getattr(app.state, "payment_gateway", None) is None:
        app.state.payment_gateway = build_payment_gateway()

    video_tokens = VideoAccessTokenCache(
        ttl_seconds=settings.VIDEO_TOKEN_TTL_SECONDS,
        sweep_interval_minutes=settings.VIDEO_TOKEN_SWEEP_MINUTES,
        clock=clock,
    )
    video_tokens.start()
    app.state.video_tokens = video_tokens

    expiry_task = None
    if settings.SUBSCRIPTION_SWEEP_ENABLED:
        expiry_task = build_expiry_task(clock=clock)
        expiry_task.start()
    app.state.expiry_task = expiry_task

    try:
        yield
    finally:
        if expiry_task is not None:
            expiry_task.stop()
        video_tokens.stop()

        await async_engine.dispose()
        logger.info("Database engine disposed")

        await redis_wrapper.close()
        logger.info("CinePass API shut down")


# ─────────────────────────────────────────────────────────────────────────────
# 🏗️ App factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(*, clock: Optional[Clock] = None) -> FastAPI:
    """Build the FastAPI app: middleware, exception handlers, routers, probes."""
    enable_docs = settings.ENABLE_DOCS
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        docs_url="/docs" if enable_docs else None,
        redoc_url="/redoc" if enable_docs else None,
        openapi_url="/openapi.json" if enable_docs else None,
        lifespan=lifespan,
    )
    if clock is not None:
        app.state.clock = clock

    # ── Middlewares (order matters) ─────────────────────────────────────────
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.frontend_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Content-Range", "Accept-Ranges", "Content-Length"],
    )
    install_rate_limiter(app)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # ── Exception handlers ──────────────────────────────────────────────────
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # ── Routers (versioned API) ─────────────────────────────────────────────
    from app.api.v1.routers import router as api_v1_router

    app.include_router(api_v1_router, prefix=settings.API_V1_STR)

    # ── Meta endpoints ──────────────────────────────────────────────────────
    @app.get("/healthz", tags=["meta"])
    @rate_limit_exempt()
    async def healthz() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/readyz", tags=["meta"])
    @rate_limit_exempt()
    async def readyz() -> JSONResponse:
        """Readiness: DB `SELECT 1` and Redis ping."""
        db_ok = await db_healthcheck()
        redis_ok = await redis_wrapper.is_connected()
        ready = bool(db_ok and redis_ok)
        return JSONResponse(
            status_code=200 if ready else 503,
            content={"ready": ready, "checks": {"db": db_ok, "redis": redis_ok}},
        )

    return app


# ─────────────────────────────────────────────────────────────────────────────
# 🚀 Module-level ASGI app for Uvicorn
# ─────────────────────────────────────────────────────────────────────────────
app = create_app()
__all__ = ["create_app", "app", "lifespan"]


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "1") == "1",
        log_level=os.getenv("LOG_LEVEL", "info"),
    )
