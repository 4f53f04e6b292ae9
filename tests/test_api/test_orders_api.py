from decimal import Decimal
from uuid import uuid4

import pytest

from tests.utils.factory import create_order, create_user


async def _create(client, headers, **body):
    return await client.post("/api/v1/orders", headers=headers, json=body)


# ─────────────────────────────────────────────────────────────
# POST /orders
# ─────────────────────────────────────────────────────────────
@pytest.mark.anyio
async def test_create_order_returns_201_with_payment_url(async_client, user_with_headers, plan, clock):
    user, headers = await user_with_headers()

    resp = await _create(async_client, headers, plan_id=str(plan.id), amount="299.00")

    assert resp.status_code == 201, resp.text
    assert resp.headers["cache-control"] == "no-store"
    body = resp.json()
    assert body["payment_url"] == "https://pay.test/checkout/pay_0001"
    assert body["order"]["user_id"] == str(user.id)
    assert body["order"]["order_type"] == "subscription"
    assert body["order"]["order_status"] == "pending"
    assert body["order"]["external_payment_id"] == "pay_0001"
    assert Decimal(str(body["order"]["amount"])) == Decimal("299.00")


@pytest.mark.anyio
async def test_create_order_rejects_wrong_price(async_client, user_with_headers, plan, gateway):
    _, headers = await user_with_headers()

    resp = await _create(async_client, headers, plan_id=str(plan.id), amount="199.00")

    assert resp.status_code == 400
    body = resp.json()
    assert body["reason"] == "PRICE_MISMATCH"
    assert body["details"] == {"expected": "299.00", "received": "199.00"}
    assert gateway.created == []


@pytest.mark.anyio
async def test_create_order_needs_exactly_one_target(async_client, user_with_headers, plan, paid_film):
    _, headers = await user_with_headers()

    both = await _create(async_client, headers, plan_id=str(plan.id), film_id=str(paid_film.id), amount="1.00")
    assert both.status_code == 400
    assert both.json()["reason"] == "ORDER_TARGET_AMBIGUOUS"

    neither = await _create(async_client, headers, amount="1.00")
    assert neither.status_code == 400
    assert neither.json()["reason"] == "ORDER_TARGET_MISSING"


# ─────────────────────────────────────────────────────────────
# GET /orders/{id}
# ─────────────────────────────────────────────────────────────
@pytest.mark.anyio
async def test_get_order_auto_polls_pending_payment(async_client, user_with_headers, plan, gateway):
    _, headers = await user_with_headers()
    created = await _create(async_client, headers, plan_id=str(plan.id), amount="299.00")
    order_id = created.json()["order"]["id"]
    gateway.set_status("pay_0001", "succeeded")

    resp = await async_client.get(f"/api/v1/orders/{order_id}", headers=headers)

    assert resp.status_code == 200
    assert resp.json()["order_status"] == "paid"
    assert resp.json()["paid_at"] is not None
    assert gateway.lookups == ["pay_0001"]

    me = await async_client.get("/api/v1/subscriptions/me", headers=headers)
    assert me.json()["has_active_subscription"] is True


@pytest.mark.anyio
async def test_get_order_survives_gateway_outage(async_client, user_with_headers, plan, gateway):
    _, headers = await user_with_headers()
    created = await _create(async_client, headers, plan_id=str(plan.id), amount="299.00")
    order_id = created.json()["order"]["id"]
    gateway.fail_get = True

    resp = await async_client.get(f"/api/v1/orders/{order_id}", headers=headers)

    assert resp.status_code == 200
    assert resp.json()["order_status"] == "pending"


@pytest.mark.anyio
async def test_foreign_order_is_not_found(async_client, user_with_headers, plan, db_session):
    owner = await create_user(db_session)
    order = await create_order(db_session, user=owner, plan=plan)
    await db_session.commit()
    _, headers = await user_with_headers()

    resp = await async_client.get(f"/api/v1/orders/{order.id}", headers=headers)
    assert resp.status_code == 404
    assert resp.json()["reason"] == "ORDER_NOT_FOUND"

    missing = await async_client.post(f"/api/v1/orders/{uuid4()}/check", headers=headers)
    assert missing.status_code == 404


# ─────────────────────────────────────────────────────────────
# POST /orders/{id}/check
# ─────────────────────────────────────────────────────────────
@pytest.mark.anyio
async def test_check_without_external_payment(async_client, user_with_headers, plan, db_session):
    user, headers = await user_with_headers()
    order = await create_order(db_session, user=user, plan=plan)
    await db_session.commit()

    resp = await async_client.post(f"/api/v1/orders/{order.id}/check", headers=headers)

    assert resp.status_code == 200
    body = resp.json()
    assert body["checked"] is False
    assert body["message"] == "No payment to check"
    assert body["order"]["order_status"] == "pending"


@pytest.mark.anyio
async def test_check_grants_then_reports_already_granted(async_client, user_with_headers, paid_film, gateway):
    _, headers = await user_with_headers()
    created = await _create(async_client, headers, film_id=str(paid_film.id), amount="149.00")
    order_id = created.json()["order"]["id"]
    gateway.set_status("pay_0001", "succeeded")

    first = await async_client.post(f"/api/v1/orders/{order_id}/check", headers=headers)
    assert first.status_code == 200
    assert first.json()["granted"] is True
    assert first.json()["message"] == "Film purchase completed"
    assert first.json()["gateway_status"] == "succeeded"

    second = await async_client.post(f"/api/v1/orders/{order_id}/check", headers=headers)
    assert second.json()["granted"] is False
    assert second.json()["already_granted"] is True
    assert second.json()["message"] == "Film already granted"

    films = await async_client.get("/api/v1/subscriptions/me/films", headers=headers)
    assert [f["name"] for f in films.json()] == ["The Long Night"]


@pytest.mark.anyio
async def test_check_reports_cancelled_payment(async_client, user_with_headers, plan, gateway):
    _, headers = await user_with_headers()
    created = await _create(async_client, headers, plan_id=str(plan.id), amount="299.00")
    order_id = created.json()["order"]["id"]
    gateway.set_status("pay_0001", "canceled")

    resp = await async_client.post(f"/api/v1/orders/{order_id}/check", headers=headers)

    assert resp.json()["message"] == "Payment status: canceled"
    assert resp.json()["order"]["order_status"] == "cancelled"


@pytest.mark.anyio
async def test_check_gateway_outage_is_502(async_client, user_with_headers, plan, gateway):
    _, headers = await user_with_headers()
    created = await _create(async_client, headers, plan_id=str(plan.id), amount="299.00")
    gateway.fail_get = True

    resp = await async_client.post(f"/api/v1/orders/{created.json()['order']['id']}/check", headers=headers)

    assert resp.status_code == 502
    assert resp.json()["reason"] == "GATEWAY_UNAVAILABLE"


# ─────────────────────────────────────────────────────────────
# GET /orders
# ─────────────────────────────────────────────────────────────
@pytest.mark.anyio
async def test_list_my_orders_only_shows_mine(async_client, user_with_headers, plan, db_session):
    user, headers = await user_with_headers()
    other = await create_user(db_session)
    await create_order(db_session, user=user, plan=plan)
    await create_order(db_session, user=other, plan=plan)
    await db_session.commit()

    resp = await async_client.get("/api/v1/orders?limit=10", headers=headers)

    assert resp.status_code == 200
    body = resp.json()
    assert body["limit"] == 10
    assert [o["user_id"] for o in body["items"]] == [str(user.id)]
