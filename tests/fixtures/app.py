# tests/fixtures/app.py

"""
🧩 App Fixture:
- Builds the real FastAPI app via `create_app` with a manual clock
- Injects the test DB session, the fake gateway and a token cache
- Returns an HTTP client for integration tests
"""

from typing import AsyncGenerator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_async_db
from app.main import create_app
from app.services.payment_gateway import get_payment_gateway
from app.services.video_token_service import VideoAccessTokenCache
from tests.fixtures.db import get_override_get_db


@pytest.fixture()
def video_tokens(clock) -> VideoAccessTokenCache:
    """Token cache on the manual clock; the GC task is never started."""
    return VideoAccessTokenCache(ttl_seconds=2 * 60 * 60, sweep_interval_minutes=30, clock=clock)


@pytest.fixture()
async def app(db_session: AsyncSession, clock, gateway, video_tokens) -> FastAPI:
    """
    🧪 The production app (routers, handlers, middleware) with test wiring.
    ASGITransport does not run the lifespan, so app.state is filled here.
    """
    app = create_app(clock=clock)
    app.state.video_tokens = video_tokens
    app.state.payment_gateway = gateway

    app.dependency_overrides[get_async_db] = get_override_get_db(db_session)
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    return app


@pytest.fixture()
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """🌐 HTTP client bound to the test app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
