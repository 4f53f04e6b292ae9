# app/core/jwt.py
from __future__ import annotations

"""
CinePass — JWT helpers
======================
- `decode_token` with optional issuer/audience enforcement and token-type check
- Redis JTI revocation lane (`revoked:jti:{jti}`)
- Case-insensitive Bearer token extraction
- `decode_access_token()` (access-only) used by the caller dependency and by
  the streaming endpoint's fallback path

Notes
-----
- Token *creation* lives in `app.core.security`.
- Video capability tokens are decoded in `app.services.video_token_service`
  with their own rules (no `exp` enforcement, cache-backed lifetime).
- If Redis is unavailable during the revocation check, behavior follows
  `AUTH_FAIL_OPEN` (default False → HTTP 503).
"""

import logging
from typing import Any, Dict, Optional, Sequence

from fastapi import HTTPException, Request, status
from jose import ExpiredSignatureError, JWTError, jwt

from app.core.config import settings
from app.core.redis_client import redis_wrapper

logger = logging.getLogger("auth")


# ─────────────────────────────────────────────────────────────
# 🔧 Internal helpers
# ─────────────────────────────────────────────────────────────
def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _is_revoked(jti: str) -> bool:
    """Return True if the token with this JTI is revoked (`revoked:jti:{jti}`).

    With no Redis connection at all the lane is considered empty (dev/tests).
    """
    try:
        rc = redis_wrapper.client
    except RuntimeError:
        return False

    try:
        return bool(await rc.get(f"revoked:jti:{jti}"))
    except Exception as e:
        if settings.AUTH_FAIL_OPEN:
            logger.error("Redis unavailable during revocation check (fail-open): %s", e)
            return False
        logger.error("Redis unavailable during revocation check (fail-closed): %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Auth service temporarily unavailable.",
        )


# ─────────────────────────────────────────────────────────────
# 🔓 Decode
# ─────────────────────────────────────────────────────────────
async def decode_token(
    token: str,
    *,
    expected_types: Optional[Sequence[str]] = None,
    verify_revocation: bool = True,
) -> Dict[str, Any]:
    """Decode and validate a JWT.

    Checks, in order: signature and exp/nbf/iat, issuer/audience when
    configured, `sub` and `jti` presence, `token_type` membership, then the
    Redis revocation lane.

    Raises
    ------
    HTTPException
      - 401 for invalid/expired tokens or type mismatch
      - 503 if Redis is down and fail-closed is configured
    """
    audience = settings.JWT_AUDIENCE or None
    issuer = settings.JWT_ISSUER or None

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY.get_secret_value(),
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_aud": bool(audience)},
            audience=audience,
            issuer=issuer,
        )
    except ExpiredSignatureError:
        logger.info("Token expired.")
        raise _unauthorized("Token has expired.")
    except JWTError as e:
        logger.warning("JWT decoding failed: %s", e)
        raise _unauthorized("Invalid token.")

    if not payload.get("sub"):
        logger.warning("Missing sub in token payload.")
        raise _unauthorized("Token missing user ID.")

    jti = payload.get("jti")
    if not jti:
        logger.warning("Missing JTI in token.")
        raise _unauthorized("Token missing JTI.")

    if expected_types is not None:
        token_type = payload.get("token_type")
        if token_type not in set(expected_types):
            logger.warning("Token type mismatch: got %r, expected one of %s", token_type, list(expected_types))
            raise _unauthorized("Invalid token type.")

    if verify_revocation and await _is_revoked(jti):
        logger.warning("Token with JTI %s has been revoked.", jti)
        raise _unauthorized("Token has been revoked.")

    return payload


async def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode a user access token (`token_type == 'access'`)."""
    return await decode_token(token, expected_types=["access"], verify_revocation=True)


# ─────────────────────────────────────────────────────────────
# 📥 Extract Bearer Token from Authorization Header
# ─────────────────────────────────────────────────────────────
def get_bearer_token(request: Request) -> str:
    """Extract a Bearer token from the `Authorization` header (case-insensitive)."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise _unauthorized("Missing Authorization header.")

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        logger.warning("Malformed Authorization header")
        raise _unauthorized("Invalid Authorization scheme.")

    return parts[1].strip()


__all__ = ["decode_token", "decode_access_token", "get_bearer_token"]
