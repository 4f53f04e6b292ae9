from typing import Awaitable, Callable, Dict, Tuple

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import CallerContext, create_access_token
from app.db.models import User
from tests.utils.factory import create_user

# ─────────────────────────────────────────────────────────────
# 🔐 Token + Auth Fixtures for Testing
# ─────────────────────────────────────────────────────────────


# ─── Fixture: Create user and return (user, token) ────────────
@pytest.fixture
def user_with_token(db_session: AsyncSession) -> Callable[..., Awaitable[Tuple[User, str]]]:
    """
    Creates a test user and returns (user, token) tuple.
    """
    async def _create(**kwargs):
        user = await create_user(db_session, **kwargs)
        await db_session.commit()
        token = await create_access_token(user.id)
        return user, token

    return _create


@pytest.fixture
def user_with_headers(user_with_token) -> Callable[..., Awaitable[Tuple[User, Dict[str, str]]]]:
    """
    Same as user_with_token but returns (user, headers) instead of (user, token).
    """
    async def _create(**kwargs):
        user, token = await user_with_token(**kwargs)
        return user, {"Authorization": f"Bearer {token}"}

    return _create


@pytest.fixture
def admin_with_headers(user_with_headers) -> Callable[..., Awaitable[Tuple[User, Dict[str, str]]]]:
    async def _create(**kwargs):
        return await user_with_headers(is_admin=True, **kwargs)

    return _create


# ─── Fixture: Caller context for service-level tests ─────────
@pytest.fixture
def caller_for() -> Callable[[User], CallerContext]:
    """
    Usage:
        caller = caller_for(user)
    """
    def _make(user: User) -> CallerContext:
        return CallerContext(user_id=user.id, is_admin=bool(user.is_admin))

    return _make
