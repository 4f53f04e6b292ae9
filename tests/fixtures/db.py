# tests/fixtures/db.py
"""
DB fixtures for tests (async, SQLite via aiosqlite by default):
- Tables built once per session from `Base.metadata`
- NullPool (no lingering connections between tests)
- Function-scoped sessions; every table emptied after each test
"""

from typing import AsyncGenerator

import pytest
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.config import settings
from app.db import base

engine = create_async_engine(settings.ASYNC_DATABASE_URL, echo=False, poolclass=NullPool)

SessionFactory = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
    class_=AsyncSession,
)


@pytest.fixture(scope="session", autouse=True)
def anyio_backend():
    return "asyncio"


@pytest.fixture(scope="session", autouse=True)
async def prepare_database():
    """Drop and recreate every table for this test session."""
    async with engine.begin() as conn:
        await conn.run_sync(base.Base.metadata.drop_all)
        await conn.run_sync(base.Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(base.Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh session per test; rows are deleted afterwards on a separate connection."""
    async with SessionFactory() as session:
        yield session

    async with engine.begin() as conn:
        for table in reversed(base.Base.metadata.sorted_tables):
            await conn.execute(delete(table))


@pytest.fixture()
def session_factory() -> async_sessionmaker:
    """The test session factory, for code that opens its own sessions (sweeps)."""
    return SessionFactory


def get_override_get_db(session: AsyncSession):
    """FastAPI dependency override using the provided session."""
    async def _override() -> AsyncGenerator[AsyncSession, None]:
        yield session
    return _override
