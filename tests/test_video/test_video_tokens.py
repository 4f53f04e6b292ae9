from datetime import timedelta
from urllib.parse import quote
from uuid import uuid4

import pytest
from jose import jwt

from app.core.clock import to_epoch_ms
from app.core.exceptions import VideoAccessError
from app.core.security import CallerContext, create_access_token
from app.schemas.enums import OrderStatus
from app.services.video_token_service import (
    VIDEO_TOKEN_TYPE,
    VideoAccessTokenCache,
    authorize_stream,
    build_stream_url,
    issue_video_token,
    refresh_video_token,
)
from tests.utils.factory import create_film, create_order, create_purchase, create_subscription, create_user

TTL_MS = 2 * 60 * 60 * 1000


# ─────────────────────────────────────────────────────────────
# Cache
# ─────────────────────────────────────────────────────────────
@pytest.mark.anyio
async def test_issue_signs_claims_and_caches_entry(video_tokens, clock):
    user_id, film_id = uuid4(), uuid4()

    issued = video_tokens.issue(user_id, film_id)

    now_ms = to_epoch_ms(clock.now())
    assert issued.token_id == f"{user_id}-{film_id}-{now_ms}"
    assert issued.expires_at_ms == now_ms + TTL_MS
    assert issued.expires_in == 7200

    claims = jwt.get_unverified_claims(issued.token)
    assert claims["sub"] == str(user_id)
    assert claims["film_id"] == str(film_id)
    assert claims["tid"] == issued.token_id
    assert claims["token_type"] == VIDEO_TOKEN_TYPE

    entry = video_tokens.get(issued.token_id)
    assert entry.original_token == issued.token
    assert len(video_tokens) == 1


@pytest.mark.anyio
async def test_validate_from_cache(video_tokens):
    user_id, film_id = uuid4(), uuid4()
    issued = video_tokens.issue(user_id, film_id)

    grant = await video_tokens.validate(film_id, issued.token)

    assert grant.source == "cache"
    assert grant.user_id == str(user_id)
    assert grant.film_id == str(film_id)
    assert grant.token_id == issued.token_id


@pytest.mark.anyio
async def test_validate_rejects_other_film(video_tokens):
    issued = video_tokens.issue(uuid4(), uuid4())

    with pytest.raises(VideoAccessError) as exc:
        await video_tokens.validate(uuid4(), issued.token)
    assert exc.value.status_code == 403
    assert exc.value.reason == "FILM_MISMATCH"


@pytest.mark.anyio
async def test_token_expires_after_ttl(video_tokens, clock):
    film_id = uuid4()
    issued = video_tokens.issue(uuid4(), film_id)

    clock.advance(seconds=7199)
    await video_tokens.validate(film_id, issued.token)

    clock.advance(seconds=2)
    with pytest.raises(VideoAccessError) as exc:
        await video_tokens.validate(film_id, issued.token)
    assert exc.value.status_code == 401
    assert exc.value.reason == "TOKEN_EXPIRED"


@pytest.mark.anyio
async def test_refresh_extends_lifetime_without_new_token(video_tokens, clock):
    user_id, film_id = uuid4(), uuid4()
    issued = video_tokens.issue(user_id, film_id)

    clock.advance(hours=1, minutes=30)
    entry = video_tokens.refresh(issued.token_id, user_id)
    assert entry.original_token == issued.token
    assert entry.expires_at_ms == to_epoch_ms(clock.now()) + TTL_MS

    clock.advance(hours=1)
    grant = await video_tokens.validate(film_id, issued.token)
    assert grant.source == "cache"


@pytest.mark.anyio
async def test_fresh_cache_falls_back_to_signed_claims(video_tokens, clock):
    film_id = uuid4()
    issued = video_tokens.issue(uuid4(), film_id)
    restarted = VideoAccessTokenCache(ttl_seconds=7200, clock=clock)

    grant = await restarted.validate(film_id, issued.token)
    assert grant.source == "payload"
    assert grant.token_id == issued.token_id

    clock.advance(hours=3)
    with pytest.raises(VideoAccessError) as exc:
        await restarted.validate(film_id, issued.token)
    assert exc.value.reason == "TOKEN_EXPIRED"


@pytest.mark.anyio
@pytest.mark.parametrize("token, reason", [(None, "TOKEN_MISSING"), ("", "TOKEN_MISSING"), ("not-a-jwt", "TOKEN_INVALID")])
async def test_missing_or_garbled_tokens(video_tokens, token, reason):
    with pytest.raises(VideoAccessError) as exc:
        await video_tokens.validate(uuid4(), token)
    assert exc.value.status_code == 401
    assert exc.value.reason == reason


@pytest.mark.anyio
async def test_access_jwt_is_accepted_as_fallback(video_tokens, redis_client):
    user_id = uuid4()
    token = await create_access_token(user_id)

    grant = await video_tokens.validate(uuid4(), token)

    assert grant.source == "jwt"
    assert grant.user_id == str(user_id)
    assert grant.film_id is None


@pytest.mark.anyio
async def test_sweep_drops_only_expired_entries(video_tokens, clock):
    old = video_tokens.issue(uuid4(), uuid4())
    clock.advance(hours=1)
    recent = video_tokens.issue(uuid4(), uuid4())

    clock.advance(hours=1, seconds=30)
    assert video_tokens.sweep() == 1
    assert video_tokens.get(old.token_id) is None
    assert video_tokens.get(recent.token_id) is not None


@pytest.mark.anyio
async def test_require_owned(video_tokens):
    owner = uuid4()
    issued = video_tokens.issue(owner, uuid4())

    assert video_tokens.require_owned(issued.token_id, owner).user_id == str(owner)

    with pytest.raises(VideoAccessError) as exc:
        video_tokens.require_owned(issued.token_id, uuid4())
    assert exc.value.reason == "TOKEN_OWNER_MISMATCH"

    with pytest.raises(VideoAccessError) as exc:
        video_tokens.require_owned("missing", owner)
    assert exc.value.status_code == 404
    assert exc.value.reason == "TOKEN_NOT_FOUND"


def test_stream_url_quotes_token():
    film_id = uuid4()
    assert build_stream_url(film_id, "a.b+c") == f"/api/v1/videos/stream/{film_id}?token={quote('a.b+c', safe='')}"


# ─────────────────────────────────────────────────────────────
# DB-aware orchestration
# ─────────────────────────────────────────────────────────────
@pytest.mark.anyio
async def test_issue_requires_entitlement_for_paid_film(db_session, video_tokens, clock, paid_film, free_film):
    user = await create_user(db_session)
    await db_session.commit()
    caller = CallerContext(user_id=user.id)

    issued, film = await issue_video_token(db_session, video_tokens, caller, free_film.id, clock=clock)
    assert film.id == free_film.id
    assert video_tokens.get(issued.token_id) is not None

    with pytest.raises(VideoAccessError) as exc:
        await issue_video_token(db_session, video_tokens, caller, paid_film.id, clock=clock)
    assert exc.value.reason == "ACCESS_DENIED"
    assert exc.value.extra["isPaid"] is True


@pytest.mark.anyio
async def test_hidden_or_unknown_film_is_not_found(db_session, video_tokens, clock):
    user = await create_user(db_session)
    hidden = await create_film(db_session, is_paid=False, price=None, is_visible=False)
    await db_session.commit()

    for film_id in (hidden.id, uuid4()):
        with pytest.raises(VideoAccessError) as exc:
            await issue_video_token(db_session, video_tokens, CallerContext(user_id=user.id), film_id, clock=clock)
        assert exc.value.reason == "FILM_NOT_FOUND"


@pytest.mark.anyio
async def test_refresh_after_entitlement_lapses_revokes_token(db_session, video_tokens, clock, plan, paid_film):
    user = await create_user(db_session)
    await create_subscription(db_session, user=user, plan=plan, started_at=clock.now() - timedelta(days=29, hours=23))
    await db_session.commit()
    caller = CallerContext(user_id=user.id)

    issued, _ = await issue_video_token(db_session, video_tokens, caller, paid_film.id, clock=clock)

    clock.advance(minutes=30)
    entry, _ = await refresh_video_token(db_session, video_tokens, caller, paid_film.id, issued.token_id, clock=clock)
    assert entry.expires_at_ms == to_epoch_ms(clock.now()) + TTL_MS

    clock.advance(hours=1)
    with pytest.raises(VideoAccessError) as exc:
        await refresh_video_token(db_session, video_tokens, caller, paid_film.id, issued.token_id, clock=clock)
    assert exc.value.reason == "ACCESS_LOST"
    assert video_tokens.get(issued.token_id) is None

    # the revoked token now only has its own payload to stand on
    grant = await video_tokens.validate(paid_film.id, issued.token)
    assert grant.source == "payload"

    with pytest.raises(VideoAccessError) as exc:
        await authorize_stream(db_session, video_tokens, paid_film.id, issued.token, clock=clock)
    assert exc.value.status_code == 403
    assert exc.value.reason == "ACCESS_DENIED"


@pytest.mark.anyio
async def test_refresh_rejects_token_for_another_film(db_session, video_tokens, clock, free_film):
    user = await create_user(db_session)
    await db_session.commit()
    issued = video_tokens.issue(user.id, free_film.id)

    with pytest.raises(VideoAccessError) as exc:
        await refresh_video_token(
            db_session, video_tokens, CallerContext(user_id=user.id), uuid4(), issued.token_id, clock=clock
        )
    assert exc.value.reason == "FILM_MISMATCH"


@pytest.mark.anyio
async def test_authorize_stream_rechecks_entitlement(db_session, video_tokens, clock, paid_film):
    buyer = await create_user(db_session)
    order = await create_order(db_session, user=buyer, film=paid_film, status=OrderStatus.PAID)
    await create_purchase(db_session, user=buyer, film=paid_film, order=order, purchased_at=clock.now())
    stranger = await create_user(db_session)
    await db_session.commit()

    token = video_tokens.issue(buyer.id, paid_film.id).token
    grant, film = await authorize_stream(db_session, video_tokens, paid_film.id, token, clock=clock)
    assert grant.user_id == str(buyer.id)
    assert film.id == paid_film.id

    forged_for_stranger = video_tokens.issue(stranger.id, paid_film.id).token
    with pytest.raises(VideoAccessError) as exc:
        await authorize_stream(db_session, video_tokens, paid_film.id, forged_for_stranger, clock=clock)
    assert exc.value.reason == "ACCESS_DENIED"


@pytest.mark.anyio
async def test_admin_access_jwt_streams_paid_film(db_session, video_tokens, clock, paid_film, redis_client):
    admin = await create_user(db_session, is_admin=True)
    await db_session.commit()
    token = await create_access_token(admin.id)

    grant, _ = await authorize_stream(db_session, video_tokens, paid_film.id, token, clock=clock)
    assert grant.source == "jwt"
