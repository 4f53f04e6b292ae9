# app/services/video_token_service.py
from __future__ import annotations

"""
CinePass — Video Access Token Cache
===================================
Short-lived capability tokens that let a browser `<video>` element stream a
film without sending an Authorization header.

Token
-----
A JWT signed with the app secret:

    {sub: user_id, film_id, tid: token_id, exp, token_type: "video_access"}

`token_id` = `{user_id}-{film_id}-{issued_ms}`. The cache keeps
`{user_id, film_id, expires_at_ms, original_token}` per token id so a refresh
can extend a token's lifetime without changing the token string (and thus
without changing the stream URL the player already holds).

Validation order
----------------
1) Missing → TOKEN_MISSING; bad signature → TOKEN_INVALID.
2) Capability token with a cache entry → the entry's expiry/user/film win.
3) Capability token without an entry → the signed claims are used.
4) Any other token → tried as a standard access JWT.
Expired → TOKEN_EXPIRED (401); wrong film → FILM_MISMATCH (403).

Lifecycle
---------
One `VideoAccessTokenCache` per process, created in the app lifespan and
stored on `app.state.video_tokens`. `start()` schedules the GC sweep,
`stop()` cancels it. The dict is only touched from the event loop.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple
from urllib.parse import quote
from uuid import UUID

from apscheduler.triggers.interval import IntervalTrigger
from fastapi import HTTPException, Request
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, system_clock, to_epoch_ms
from app.core.config import settings
from app.core.exceptions import VideoAccessError
from app.core.jwt import decode_access_token
from app.core.scheduler import RecurringTask
from app.core.security import CallerContext, sign_jwt
from app.db.models.film import Film
from app.db.models.user import User
from app.services.access_service import decide_film_access

logger = logging.getLogger("video.tokens")

VIDEO_TOKEN_TYPE = "video_access"


# ──────────────────────────────────────────────────────────────
# 📦 Types
# ──────────────────────────────────────────────────────────────
@dataclass
class VideoTokenEntry:
    user_id: str
    film_id: str
    expires_at_ms: int
    original_token: str


@dataclass(frozen=True)
class IssuedVideoToken:
    token: str
    token_id: str
    film_id: str
    expires_at_ms: int
    expires_in: int


@dataclass(frozen=True)
class VideoGrant:
    """Who a validated token speaks for. `source` ∈ {cache, payload, jwt}."""

    user_id: str
    film_id: Optional[str]
    token_id: Optional[str]
    source: str
    expires_at_ms: Optional[int] = None


# ──────────────────────────────────────────────────────────────
# 🗃️ Cache
# ──────────────────────────────────────────────────────────────
class VideoAccessTokenCache:
    def __init__(
        self,
        *,
        ttl_seconds: int = settings.VIDEO_TOKEN_TTL_SECONDS,
        sweep_interval_minutes: int = settings.VIDEO_TOKEN_SWEEP_MINUTES,
        clock: Clock = system_clock,
    ) -> None:
        self.ttl_seconds = int(ttl_seconds)
        self.clock = clock
        self._entries: Dict[str, VideoTokenEntry] = {}
        self._gc = RecurringTask(
            "video-token-gc",
            self._sweep_job,
            IntervalTrigger(minutes=sweep_interval_minutes),
            clock=clock,
        )

    # ── lifecycle ────────────────────────────────────────────
    def start(self) -> None:
        self._gc.start()

    def stop(self) -> None:
        self._gc.stop()

    @property
    def running(self) -> bool:
        return self._gc.running

    def __len__(self) -> int:
        return len(self._entries)

    def _now_ms(self) -> int:
        return to_epoch_ms(self.clock.now())

    # ── operations ───────────────────────────────────────────
    def issue(self, user_id: UUID | str, film_id: UUID | str) -> IssuedVideoToken:
        now_ms = self._now_ms()
        user_key, film_key = str(user_id), str(film_id)
        token_id = f"{user_key}-{film_key}-{now_ms}"
        expires_at_ms = now_ms + self.ttl_seconds * 1000

        token = sign_jwt(
            {
                "sub": user_key,
                "film_id": film_key,
                "tid": token_id,
                "exp": expires_at_ms // 1000,
                "token_type": VIDEO_TOKEN_TYPE,
            }
        )
        self._entries[token_id] = VideoTokenEntry(
            user_id=user_key,
            film_id=film_key,
            expires_at_ms=expires_at_ms,
            original_token=token,
        )
        logger.info("Video token issued | token_id=%s", token_id)
        return IssuedVideoToken(
            token=token,
            token_id=token_id,
            film_id=film_key,
            expires_at_ms=expires_at_ms,
            expires_in=self.ttl_seconds,
        )

    def get(self, token_id: str) -> Optional[VideoTokenEntry]:
        return self._entries.get(token_id)

    def require_owned(self, token_id: str, user_id: UUID | str) -> VideoTokenEntry:
        entry = self._entries.get(token_id)
        if entry is None:
            raise VideoAccessError.token_not_found()
        if entry.user_id != str(user_id):
            logger.warning("Video token owner mismatch | token_id=%s", token_id)
            raise VideoAccessError.owner_mismatch()
        return entry

    def extend(self, token_id: str) -> VideoTokenEntry:
        entry = self._entries.get(token_id)
        if entry is None:
            raise VideoAccessError.token_not_found()
        entry.expires_at_ms = self._now_ms() + self.ttl_seconds * 1000
        return entry

    def refresh(self, token_id: str, user_id: UUID | str) -> VideoTokenEntry:
        """Owner-checked extension; the token string is unchanged."""
        self.require_owned(token_id, user_id)
        entry = self.extend(token_id)
        logger.info("Video token refreshed | token_id=%s", token_id)
        return entry

    def revoke(self, token_id: str) -> bool:
        removed = self._entries.pop(token_id, None) is not None
        if removed:
            logger.info("Video token revoked | token_id=%s", token_id)
        return removed

    def sweep(self) -> int:
        now_ms = self._now_ms()
        expired = [tid for tid, e in self._entries.items() if e.expires_at_ms < now_ms]
        for tid in expired:
            del self._entries[tid]
        if expired:
            logger.info("Video token sweep | removed=%s remaining=%s", len(expired), len(self._entries))
        return len(expired)

    async def _sweep_job(self) -> int:
        return self.sweep()

    async def validate(self, film_id: UUID | str, token: Optional[str]) -> VideoGrant:
        if not token:
            raise VideoAccessError.token_missing()

        audience = settings.JWT_AUDIENCE or None
        try:
            claims = jwt.decode(
                token,
                settings.JWT_SECRET_KEY.get_secret_value(),
                algorithms=[settings.JWT_ALGORITHM],
                audience=audience,
                issuer=settings.JWT_ISSUER or None,
                options={"verify_exp": False, "verify_aud": bool(audience)},
            )
        except JWTError as exc:
            logger.warning("Video token rejected: %s", exc)
            raise VideoAccessError.token_invalid() from exc

        if claims.get("token_type") != VIDEO_TOKEN_TYPE:
            return await self._validate_access_jwt(token, claims)

        now_ms = self._now_ms()
        token_id = claims.get("tid")
        entry = self._entries.get(token_id) if token_id else None
        if entry is not None:
            user_id, token_film, expires_at_ms, source = entry.user_id, entry.film_id, entry.expires_at_ms, "cache"
        else:
            user_id, token_film, exp = claims.get("sub"), claims.get("film_id"), claims.get("exp")
            if not user_id or not token_film or exp is None:
                raise VideoAccessError.token_invalid()
            expires_at_ms, source = int(exp) * 1000, "payload"

        if expires_at_ms < now_ms:
            raise VideoAccessError.token_expired()
        if str(token_film) != str(film_id):
            logger.warning("Video token film mismatch | token_id=%s film_id=%s", token_id, film_id)
            raise VideoAccessError.film_mismatch()

        return VideoGrant(
            user_id=str(user_id),
            film_id=str(token_film),
            token_id=token_id,
            source=source,
            expires_at_ms=expires_at_ms,
        )

    async def _validate_access_jwt(self, token: str, claims: dict) -> VideoGrant:
        exp = claims.get("exp")
        if exp is not None and int(exp) * 1000 < self._now_ms():
            raise VideoAccessError.token_expired()
        try:
            payload = await decode_access_token(token)
        except HTTPException as exc:
            if exc.status_code != 401:
                raise
            raise VideoAccessError.token_invalid() from exc
        return VideoGrant(
            user_id=str(payload["sub"]),
            film_id=None,
            token_id=None,
            source="jwt",
            expires_at_ms=int(exp) * 1000 if exp is not None else None,
        )


def get_video_token_cache(request: Request) -> VideoAccessTokenCache:
    """FastAPI dependency: the process-wide cache from `app.state`."""
    cache = getattr(request.app.state, "video_tokens", None)
    if cache is None:
        raise RuntimeError("Video token cache is not initialised")
    return cache


def build_stream_url(film_id: UUID | str, token: str) -> str:
    return f"{settings.API_V1_STR}/videos/stream/{film_id}?token={quote(token, safe='')}"


# ──────────────────────────────────────────────────────────────
# 🎬 Orchestration (DB-aware)
# ──────────────────────────────────────────────────────────────
async def _load_film(db: AsyncSession, film_id: UUID) -> Film:
    film = await db.get(Film, film_id)
    if film is None:
        raise VideoAccessError.film_not_found()
    return film


async def issue_video_token(
    db: AsyncSession,
    cache: VideoAccessTokenCache,
    caller: CallerContext,
    film_id: UUID,
    *,
    clock: Clock = system_clock,
    check_access: bool = True,
) -> Tuple[IssuedVideoToken, Film]:
    film = await _load_film(db, film_id)
    if check_access:
        if not film.is_visible and not caller.is_admin:
            raise VideoAccessError.film_not_found()
        decision = await decide_film_access(db, caller.user_id, film, clock=clock)
        if not decision.allowed:
            raise VideoAccessError.access_denied(user_id=caller.user_id, film_id=film.id)
    return cache.issue(caller.user_id, film.id), film


async def refresh_video_token(
    db: AsyncSession,
    cache: VideoAccessTokenCache,
    caller: CallerContext,
    film_id: UUID,
    token_id: str,
    *,
    clock: Clock = system_clock,
) -> Tuple[VideoTokenEntry, Film]:
    """
    Extend a token the caller owns. Paid films are re-checked first; if the
    entitlement is gone the token is revoked and ACCESS_LOST is raised.
    """
    entry = cache.require_owned(token_id, caller.user_id)
    if entry.film_id != str(film_id):
        raise VideoAccessError.film_mismatch()

    film = await _load_film(db, film_id)
    if film.is_paid and not caller.is_admin:
        decision = await decide_film_access(db, caller.user_id, film, clock=clock)
        if not decision.allowed:
            cache.revoke(token_id)
            logger.warning("Entitlement lost; video token revoked | token_id=%s user_id=%s", token_id, caller.user_id)
            raise VideoAccessError.access_lost(user_id=caller.user_id, film_id=film.id)

    entry = cache.extend(token_id)
    logger.info("Video token refreshed | token_id=%s", token_id)
    return entry, film


async def authorize_stream(
    db: AsyncSession,
    cache: VideoAccessTokenCache,
    film_id: UUID,
    token: Optional[str],
    *,
    clock: Clock = system_clock,
) -> Tuple[VideoGrant, Film]:
    """Validate the token, then re-run the access decision for paid films."""
    grant = await cache.validate(film_id, token)
    film = await _load_film(db, film_id)

    if film.is_paid:
        try:
            user_id = UUID(grant.user_id)
        except ValueError as exc:
            raise VideoAccessError.token_invalid() from exc

        if grant.source == "jwt":
            user = await db.get(User, user_id)
            if user is not None and user.is_admin:
                return grant, film

        decision = await decide_film_access(db, user_id, film, clock=clock)
        if not decision.allowed:
            raise VideoAccessError.access_denied(user_id=user_id, film_id=film.id)
    return grant, film


__all__ = [
    "VIDEO_TOKEN_TYPE",
    "VideoTokenEntry",
    "IssuedVideoToken",
    "VideoGrant",
    "VideoAccessTokenCache",
    "get_video_token_cache",
    "build_stream_url",
    "issue_video_token",
    "refresh_video_token",
    "authorize_stream",
]
