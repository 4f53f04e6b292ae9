# ╔══════════════════════════════════════════════════════════════════════════╗
# ║ CinePass · Video Access API                                              ║
# ╠──────────────────────────────────────────────────────────────────────────╣
# ║  - POST /videos/{film_id}/token          → issue a capability token      ║
# ║  - POST /videos/{film_id}/token/refresh  → extend it (same token & URL)  ║
# ║  - GET  /videos/stream/{film_id}?token=  → byte-range video stream      ║
# ╠──────────────────────────────────────────────────────────────────────────╣
# ║ The stream endpoint takes the token in the query string (a <video> tag   ║
# ║ cannot send headers) and only serves requests whose Origin/Referer is an ║
# ║ allowed frontend origin.                                                 ║
# ╚══════════════════════════════════════════════════════════════════════════╝
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Path, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.http_utils import json_no_store, origin_allowed
from app.core.clock import Clock, get_clock
from app.core.config import settings
from app.core.exceptions import VideoAccessError
from app.core.limiter import rate_limit, rate_limit_exempt
from app.core.security import CallerContext, get_caller
from app.db.session import get_async_db
from app.schemas.video import VideoTokenOut, VideoTokenRefreshIn, VideoTokenRefreshOut
from app.services.video_stream import resolve_video_path, video_response
from app.services.video_token_service import (
    VideoAccessTokenCache,
    authorize_stream,
    build_stream_url,
    get_video_token_cache,
    issue_video_token,
    refresh_video_token,
)

router = APIRouter(prefix="/videos", tags=["Videos"])
logger = logging.getLogger("video.stream")


@router.post("/{film_id}/token", response_model=VideoTokenOut, summary="Issue a video access token")
@rate_limit("30/minute")
async def create_video_token(
    request: Request,
    response: Response,
    film_id: UUID = Path(...),
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
    cache: VideoAccessTokenCache = Depends(get_video_token_cache),
    clock: Clock = Depends(get_clock),
):
    issued, film = await issue_video_token(db, cache, caller, film_id, clock=clock)
    body = VideoTokenOut(
        token=issued.token,
        token_id=issued.token_id,
        film_id=film.id,
        stream_url=build_stream_url(film.id, issued.token),
        expires_in=issued.expires_in,
        film_name=film.name,
    )
    return json_no_store(body.model_dump(by_alias=True), response=response)


@router.post("/{film_id}/token/refresh", response_model=VideoTokenRefreshOut, summary="Refresh a video access token")
@rate_limit("60/minute")
async def refresh_token(
    request: Request,
    response: Response,
    film_id: UUID = Path(...),
    payload: VideoTokenRefreshIn = Body(...),
    caller: CallerContext = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
    cache: VideoAccessTokenCache = Depends(get_video_token_cache),
    clock: Clock = Depends(get_clock),
):
    _, film = await refresh_video_token(db, cache, caller, film_id, payload.token_id, clock=clock)
    body = VideoTokenRefreshOut(token_id=payload.token_id, expires_in=cache.ttl_seconds, film_name=film.name)
    return json_no_store(body.model_dump(by_alias=True), response=response)


@router.get("/stream/{film_id}", summary="Stream a film (Range aware)")
@rate_limit_exempt()
async def stream_video(
    request: Request,
    film_id: UUID = Path(...),
    token: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_async_db),
    cache: VideoAccessTokenCache = Depends(get_video_token_cache),
    clock: Clock = Depends(get_clock),
):
    if not origin_allowed(request, settings.frontend_origins_list):
        logger.warning("Stream request from disallowed origin | film_id=%s", film_id)
        raise VideoAccessError.origin_forbidden()

    grant, film = await authorize_stream(db, cache, film_id, token, clock=clock)
    path = resolve_video_path(film.film_url)
    logger.debug("Streaming | film_id=%s user_id=%s source=%s", film_id, grant.user_id, grant.source)
    return video_response(path, request.headers.get("range"))


__all__ = ["router"]
