# tests/conftest.py
"""
Global test bootstrap
- Test env (SQLite DB, in-memory rate-limit storage, limits off, no sweeps)
- Mounts a mock Redis client into app.core.redis_client
- Pulls in the fixture modules (db, app, auth, clock, gateway, catalog)
"""

from __future__ import annotations

import os

import pytest

# ──────────────────────────────────────────────────────────────────────────────
# 🌱 Test env
#   NOTE: set BEFORE importing the app so settings/limiter pick it up.
# ──────────────────────────────────────────────────────────────────────────────
os.environ["ENV"] = "test"
os.environ.setdefault("JWT_SECRET_KEY", "cinepass-test-secret-key-0123456789")
os.environ["DATABASE_URL_OVERRIDE"] = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///./test_cinepass.db")
os.environ["RATELIMIT_STORAGE_URI"] = "memory://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["RATE_LIMIT_TEST_BYPASS"] = "1"
os.environ["SUBSCRIPTION_SWEEP_ENABLED"] = "false"
os.environ["FRONTEND_ORIGINS"] = "http://localhost:5173"
os.environ["PAYMENT_REDIRECT_HOST"] = "http://localhost:5173"
os.environ["PAYMENT_WEBHOOK_SECRETS"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

# ──────────────────────────────────────────────────────────────────────────────
# 🧪 Install mock Redis globally before any tests run
# ──────────────────────────────────────────────────────────────────────────────
from app.core.redis_client import redis_wrapper  # noqa: E402
from tests.fixtures.mocks.redis import MockRedisClient  # noqa: E402

redis_wrapper._client = MockRedisClient()  # make the app use the mock client

# ──────────────────────────────────────────────────────────────────────────────
# 📦 Fixtures
# ──────────────────────────────────────────────────────────────────────────────
from tests.fixtures.db import *        # noqa: F401,F403,E402
from tests.fixtures.clock import *     # noqa: F401,F403,E402
from tests.fixtures.gateway import *   # noqa: F401,F403,E402
from tests.fixtures.app import *       # noqa: F401,F403,E402
from tests.fixtures.auth import *      # noqa: F401,F403,E402
from tests.fixtures.catalog import *   # noqa: F401,F403,E402


# ──────────────────────────────────────────────────────────────────────────────
# 🔌 Redis fixture, cleared around each test that asks for it
# ──────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
async def redis_client():
    client = redis_wrapper.client
    await client.flushall()
    yield client
    await client.flushall()
