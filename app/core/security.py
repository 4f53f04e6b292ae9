# app/core/security.py
from __future__ import annotations

"""
CinePass — Authentication & Caller Context
==========================================
- JWT signing (`sign_jwt`) shared by user access tokens and video capability
  tokens
- Access-token creation (`jti` claim; revocation is checked in `app.core.jwt`)
- Decoding is delegated to `app.core.jwt`
- FastAPI dependencies that resolve the **caller**:

    get_current_user  → active `User` row
    get_caller        → `CallerContext(user_id, is_admin, claims)`

Every entitlement-affecting operation receives a `CallerContext` explicitly;
nothing reads an ambient "current user" from request-scoped globals.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.jwt import decode_access_token
from app.db.models.user import User
from app.db.session import get_async_db

# ───────────────────────────────────────────────
# 🔐 Security Constants and Setup
# ───────────────────────────────────────────────
ALGORITHM: str = settings.JWT_ALGORITHM
ISSUER: Optional[str] = settings.JWT_ISSUER
AUDIENCE: Optional[str] = settings.JWT_AUDIENCE

bearer_scheme = HTTPBearer(auto_error=False)
logger = logging.getLogger("security")


# ───────────────────────────────────────────────
# 🧑 Caller context
# ───────────────────────────────────────────────
@dataclass(frozen=True)
class CallerContext:
    """Who is asking. Passed explicitly into services."""

    user_id: UUID
    is_admin: bool = False
    claims: Dict[str, Any] = field(default_factory=dict)


# ───────────────────────────────────────────────
# ✍️ Signing
# ───────────────────────────────────────────────
def sign_jwt(payload: Dict[str, Any]) -> str:
    """Sign `payload` with the app secret, adding iss/aud when configured."""
    claims = dict(payload)
    if ISSUER:
        claims.setdefault("iss", ISSUER)
    if AUDIENCE:
        claims.setdefault("aud", AUDIENCE)
    return jwt.encode(claims, settings.JWT_SECRET_KEY.get_secret_value(), algorithm=ALGORITHM)


# ───────────────────────────────────────────────
# 🪪 JWT — Access Token Generation
# ───────────────────────────────────────────────
async def create_access_token(
    user_id: UUID,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a signed **access token**; its `jti` is what `revoked:jti:{jti}` keys on."""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    jti = str(uuid4())

    token = sign_jwt(
        {
            "sub": str(user_id),
            "exp": expire,
            "iat": now,
            "nbf": now,
            "jti": jti,
            "token_type": "access",
        }
    )
    logger.debug("Issued access token | user_id=%s jti=%s", user_id, jti)
    return token


# ───────────────────────────────────────────────
# 🆔 Helpers — Extract User ID from Payload
# ───────────────────────────────────────────────
def get_user_id_from_payload(payload: Dict[str, Any]) -> UUID:
    """Extract and validate `sub` as a UUID; raise 401 if malformed/missing."""
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token: missing user_id")
    try:
        return UUID(str(user_id))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token: malformed user_id")


# ───────────────────────────────────────────────
# 👤 Dependencies — Current user / caller
# ───────────────────────────────────────────────
async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_async_db),
) -> User:
    """Authenticate a user from the presented **access** token.

    1) Decode & validate JWT (revocation, expiry, type) via `app.core.jwt`.
    2) Load user from DB, ensure active.
    3) Stash the claims on `request.state` (rate-limit keying, logging).
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = await decode_access_token(credentials.credentials)
    user_id = get_user_id_from_payload(payload)

    user = (await db.execute(select(User).where(User.id == user_id))).scalars().first()
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive or missing user")

    request.state.user_id = user.id
    request.state.token_payload = payload
    return user


async def get_caller(
    request: Request,
    user: User = Depends(get_current_user),
) -> CallerContext:
    """Resolve the explicit caller context for service calls."""
    return CallerContext(
        user_id=user.id,
        is_admin=bool(user.is_admin),
        claims=dict(getattr(request.state, "token_payload", {}) or {}),
    )


__all__ = [
    "CallerContext",
    "sign_jwt",
    "create_access_token",
    "get_user_id_from_payload",
    "get_current_user",
    "get_caller",
]
