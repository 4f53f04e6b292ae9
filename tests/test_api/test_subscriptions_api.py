from datetime import timedelta
from uuid import uuid4

import pytest

from app.schemas.enums import OrderStatus
from tests.utils.factory import create_film, create_order, create_plan, create_purchase, create_subscription


# ─────────────────────────────────────────────────────────────
# Plans & my subscription
# ─────────────────────────────────────────────────────────────
@pytest.mark.anyio
async def test_public_plans_cheapest_first(async_client, db_session, plan):
    await create_plan(db_session, name="Weekly", price="99.00", duration_days=7)
    await create_plan(db_session, name="Hidden", price="1.00", is_active=False)
    await db_session.commit()

    resp = await async_client.get("/api/v1/subscriptions/plans")

    assert resp.status_code == 200
    assert [p["name"] for p in resp.json()] == ["Weekly", "Monthly"]


@pytest.mark.anyio
async def test_my_subscription_empty(async_client, user_with_headers):
    _, headers = await user_with_headers()

    resp = await async_client.get("/api/v1/subscriptions/me", headers=headers)

    assert resp.status_code == 200
    assert resp.json() == {"subscription": None, "has_active_subscription": False}


@pytest.mark.anyio
async def test_my_subscription_reports_lapsed_as_expired(async_client, user_with_headers, db_session, plan, clock):
    user, headers = await user_with_headers()
    await create_subscription(db_session, user=user, plan=plan, started_at=clock.now() - timedelta(days=31))
    await db_session.commit()

    resp = await async_client.get("/api/v1/subscriptions/me", headers=headers)

    body = resp.json()
    assert body["has_active_subscription"] is False
    assert body["subscription"]["status"] == "expired"


@pytest.mark.anyio
async def test_my_films(async_client, user_with_headers, db_session, paid_film, clock):
    user, headers = await user_with_headers()
    order = await create_order(db_session, user=user, film=paid_film, status=OrderStatus.PAID)
    await create_purchase(db_session, user=user, film=paid_film, order=order, purchased_at=clock.now())
    await db_session.commit()

    resp = await async_client.get("/api/v1/subscriptions/me/films", headers=headers)

    assert resp.status_code == 200
    assert resp.json()[0]["film_id"] == str(paid_film.id)
    assert resp.json()[0]["order_id"] == str(order.id)


# ─────────────────────────────────────────────────────────────
# Access flags
# ─────────────────────────────────────────────────────────────
@pytest.mark.anyio
async def test_access_flags_with_subscription(async_client, user_with_headers, db_session, plan, paid_film, free_film, clock):
    user, headers = await user_with_headers()
    await create_subscription(db_session, user=user, plan=plan, started_at=clock.now())
    await db_session.commit()

    resp = await async_client.get(
        "/api/v1/access/films",
        headers=headers,
        params=[("ids", str(paid_film.id)), ("ids", str(free_film.id)), ("ids", str(uuid4()))],
    )

    assert resp.status_code == 200
    items = {i["film_id"]: i for i in resp.json()["items"]}
    assert len(items) == 2
    assert items[str(paid_film.id)]["has_access"] is True
    assert items[str(paid_film.id)]["reason"] == "subscription"
    assert items[str(free_film.id)]["reason"] == "public"


@pytest.mark.anyio
async def test_access_flags_require_auth(async_client, paid_film):
    resp = await async_client.get("/api/v1/access/films", params={"ids": str(paid_film.id)})
    assert resp.status_code == 401


# ─────────────────────────────────────────────────────────────
# Admin
# ─────────────────────────────────────────────────────────────
@pytest.mark.anyio
async def test_admin_grant_subscription(async_client, admin_with_headers, user_with_headers, plan, clock):
    _, admin_headers = await admin_with_headers()
    member, member_headers = await user_with_headers()

    resp = await async_client.post(
        "/api/v1/admin/subscriptions/grant",
        headers=admin_headers,
        json={"user_id": str(member.id), "plan_id": str(plan.id), "duration_days": 90},
    )

    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["status"] == "active"
    assert body["order_id"] is None
    assert body["plan"]["name"] == "Monthly"

    me = await async_client.get("/api/v1/subscriptions/me", headers=member_headers)
    assert me.json()["has_active_subscription"] is True


@pytest.mark.anyio
async def test_admin_grant_unknown_user(async_client, admin_with_headers, plan):
    _, admin_headers = await admin_with_headers()

    resp = await async_client.post(
        "/api/v1/admin/subscriptions/grant",
        headers=admin_headers,
        json={"user_id": str(uuid4()), "plan_id": str(plan.id)},
    )

    assert resp.status_code == 400
    assert resp.json()["reason"] == "USER_NOT_FOUND"


@pytest.mark.anyio
async def test_admin_endpoints_reject_members(async_client, user_with_headers, plan):
    member, headers = await user_with_headers()

    grant = await async_client.post(
        "/api/v1/admin/subscriptions/grant",
        headers=headers,
        json={"user_id": str(member.id), "plan_id": str(plan.id)},
    )
    assert grant.status_code == 403

    listing = await async_client.get("/api/v1/admin/orders", headers=headers)
    assert listing.status_code == 403


@pytest.mark.anyio
async def test_admin_expiry_sweep_and_order_filter(async_client, admin_with_headers, db_session, plan, clock):
    admin, headers = await admin_with_headers()
    await create_subscription(db_session, user=admin, plan=plan, started_at=clock.now() - timedelta(days=60))
    await create_order(db_session, user=admin, plan=plan, created_at=clock.now() - timedelta(days=2))
    await create_order(db_session, user=admin, plan=plan, status=OrderStatus.PAID)
    await db_session.commit()

    sweep = await async_client.post("/api/v1/admin/subscriptions/expire", headers=headers)
    assert sweep.status_code == 200
    assert sweep.json() == {"subscriptions": 1, "orders": 1}

    failed = await async_client.get("/api/v1/admin/orders", headers=headers, params={"status": "failed"})
    assert [o["order_status"] for o in failed.json()["items"]] == ["failed"]


@pytest.mark.anyio
async def test_admin_token_skips_access_check(async_client, admin_with_headers, db_session):
    _, headers = await admin_with_headers()
    film = await create_film(db_session, name="Premiere", is_paid=True)
    await db_session.commit()

    resp = await async_client.post(f"/api/v1/admin/videos/{film.id}/token", headers=headers)

    assert resp.status_code == 200
    assert resp.json()["streamUrl"].startswith(f"/api/v1/videos/stream/{film.id}?token=")


@pytest.mark.anyio
async def test_healthz(async_client):
    resp = await async_client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
