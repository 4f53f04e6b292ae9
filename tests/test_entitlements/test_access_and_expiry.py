from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import select

from app.core.clock import as_utc_aware
from app.core.exceptions import OrderValidationError
from app.db.models.order import Order
from app.db.models.subscription import Subscription
from app.schemas.enums import AccessReason, OrderStatus, SubscriptionStatus
from app.schemas.orders import paid_order_from_row
from app.services.access_service import (
    decide_film_access,
    film_access_flags,
    get_user_subscription,
    has_active_subscription,
    has_user_purchased_film,
    list_purchased_films,
)
from app.services.entitlement_service import grant_entitlement, grant_manual_subscription
from app.services.expiry_service import (
    expire_stale_orders,
    run_expiry_sweep,
    update_all_expired_subscriptions,
    update_expired_subscriptions,
)
from tests.utils.factory import create_film, create_order, create_plan, create_purchase, create_subscription, create_user


# ─────────────────────────────────────────────────────────────
# Lazy expiry
# ─────────────────────────────────────────────────────────────
@pytest.mark.anyio
async def test_thirty_day_plan_lapses_on_day_thirty_one(db_session, clock, plan, paid_film):
    user = await create_user(db_session)
    order = await create_order(db_session, user=user, plan=plan, external_payment_id="pay_month")
    await db_session.commit()
    user_id = user.id

    granted = await grant_entitlement(db_session, paid_order_from_row(order), clock=clock)

    clock.advance(days=29, hours=23)
    decision = await decide_film_access(db_session, user_id, paid_film, clock=clock)
    assert decision.allowed is True
    assert decision.reason == AccessReason.SUBSCRIPTION

    clock.advance(days=1, hours=1)
    decision = await decide_film_access(db_session, user_id, paid_film, clock=clock)
    assert decision.allowed is False
    assert decision.reason is None
    assert decision.is_paid is True

    subscription = await db_session.get(Subscription, granted.entitlement_id, populate_existing=True)
    assert subscription.status == SubscriptionStatus.EXPIRED


@pytest.mark.anyio
async def test_lazy_flip_is_scoped_to_one_user(db_session, clock, plan):
    alice = await create_user(db_session)
    bob = await create_user(db_session)
    await create_subscription(db_session, user=alice, plan=plan, started_at=clock.now() - timedelta(days=40))
    stale_bob = await create_subscription(db_session, user=bob, plan=plan, started_at=clock.now() - timedelta(days=40))
    await db_session.commit()
    bob_sub_id = stale_bob.id

    assert await update_expired_subscriptions(db_session, alice.id, clock=clock) == 1

    bob_sub = await db_session.get(Subscription, bob_sub_id, populate_existing=True)
    assert bob_sub.status == SubscriptionStatus.ACTIVE

    assert await update_all_expired_subscriptions(db_session, clock=clock) == 1


# ─────────────────────────────────────────────────────────────
# Access decisions
# ─────────────────────────────────────────────────────────────
@pytest.mark.anyio
async def test_free_film_is_public_even_anonymously(db_session, clock, free_film):
    decision = await decide_film_access(db_session, None, free_film, clock=clock)
    assert decision.allowed is True
    assert decision.reason == AccessReason.PUBLIC
    assert decision.is_paid is False


@pytest.mark.anyio
async def test_paid_film_denied_anonymously_and_without_entitlement(db_session, clock, paid_film):
    user = await create_user(db_session)
    await db_session.commit()

    assert (await decide_film_access(db_session, None, paid_film, clock=clock)).allowed is False
    assert (await decide_film_access(db_session, user.id, paid_film, clock=clock)).allowed is False


@pytest.mark.anyio
async def test_purchase_grants_access_until_it_expires(db_session, clock, paid_film):
    user = await create_user(db_session)
    order = await create_order(db_session, user=user, film=paid_film, status=OrderStatus.PAID)
    await create_purchase(
        db_session,
        user=user,
        film=paid_film,
        order=order,
        purchased_at=clock.now(),
        expires_at=clock.now() + timedelta(days=2),
    )
    await db_session.commit()

    decision = await decide_film_access(db_session, user.id, paid_film, clock=clock)
    assert decision.allowed is True
    assert decision.reason == AccessReason.PURCHASE

    clock.advance(days=3)
    assert await has_user_purchased_film(db_session, user.id, paid_film.id, clock=clock) is False
    assert (await decide_film_access(db_session, user.id, paid_film, clock=clock)).allowed is False


@pytest.mark.anyio
async def test_subscription_wins_over_purchase_as_reason(db_session, clock, plan, paid_film):
    user = await create_user(db_session)
    order = await create_order(db_session, user=user, film=paid_film, status=OrderStatus.PAID)
    await create_purchase(db_session, user=user, film=paid_film, order=order, purchased_at=clock.now())
    await create_subscription(db_session, user=user, plan=plan, started_at=clock.now())
    await db_session.commit()

    decision = await decide_film_access(db_session, user.id, paid_film, clock=clock)
    assert decision.reason == AccessReason.SUBSCRIPTION


@pytest.mark.anyio
async def test_film_access_flags_batch(db_session, clock, paid_film, free_film):
    user = await create_user(db_session)
    other_paid = await create_film(db_session, name="Second Feature")
    order = await create_order(db_session, user=user, film=paid_film, status=OrderStatus.PAID)
    await create_purchase(db_session, user=user, film=paid_film, order=order, purchased_at=clock.now())
    await db_session.commit()

    flags = await film_access_flags(
        db_session,
        user.id,
        [paid_film.id, free_film.id, other_paid.id, uuid4(), paid_film.id],
        clock=clock,
    )

    by_film = {f.film_id: f for f in flags}
    assert len(flags) == 3
    assert by_film[paid_film.id].has_access is True
    assert by_film[paid_film.id].purchased is True
    assert by_film[paid_film.id].reason == AccessReason.PURCHASE
    assert by_film[free_film.id].reason == AccessReason.PUBLIC
    assert by_film[free_film.id].is_paid is False
    assert by_film[other_paid.id].has_access is False
    assert by_film[other_paid.id].subscription_active is False

    assert await film_access_flags(db_session, user.id, [], clock=clock) == []


@pytest.mark.anyio
async def test_list_purchased_films_skips_lapsed(db_session, clock, paid_film):
    user = await create_user(db_session)
    old_film = await create_film(db_session, name="Old Rental")
    live = await create_order(db_session, user=user, film=paid_film, status=OrderStatus.PAID)
    lapsed = await create_order(db_session, user=user, film=old_film, status=OrderStatus.PAID)
    await create_purchase(db_session, user=user, film=paid_film, order=live, purchased_at=clock.now())
    await create_purchase(
        db_session,
        user=user,
        film=old_film,
        order=lapsed,
        purchased_at=clock.now() - timedelta(days=10),
        expires_at=clock.now() - timedelta(days=1),
    )
    await db_session.commit()

    films = await list_purchased_films(db_session, user.id, clock=clock)
    assert [f["name"] for f in films] == ["The Long Night"]
    assert films[0]["order_id"] == live.id


# ─────────────────────────────────────────────────────────────
# Subscription reads and manual grants
# ─────────────────────────────────────────────────────────────
@pytest.mark.anyio
async def test_get_user_subscription_returns_furthest_expiry(db_session, clock, plan):
    user = await create_user(db_session)
    yearly = await create_plan(db_session, name="Yearly", price="2990.00", duration_days=365)
    await create_subscription(db_session, user=user, plan=plan, started_at=clock.now())
    longest = await create_subscription(db_session, user=user, plan=yearly, started_at=clock.now())
    await db_session.commit()

    current = await get_user_subscription(db_session, user.id, clock=clock)
    assert current.id == longest.id
    assert current.plan.name == "Yearly"

    assert await get_user_subscription(db_session, uuid4(), clock=clock) is None


@pytest.mark.anyio
async def test_manual_grant_replaces_active_subscriptions(db_session, clock, plan):
    user = await create_user(db_session)
    previous = await create_subscription(db_session, user=user, plan=plan, started_at=clock.now() - timedelta(days=5))
    await db_session.commit()
    previous_id = previous.id

    granted = await grant_manual_subscription(db_session, user_id=user.id, plan_id=plan.id, clock=clock)

    assert granted.order_id is None
    assert granted.status == SubscriptionStatus.ACTIVE
    assert granted.plan.name == "Monthly"
    assert as_utc_aware(granted.expires_at) == clock.now() + timedelta(days=30)

    previous = await db_session.get(Subscription, previous_id, populate_existing=True)
    assert previous.status == SubscriptionStatus.CANCELLED
    assert await has_active_subscription(db_session, user.id, clock=clock) is True


@pytest.mark.anyio
async def test_manual_grant_duration_override_and_unknown_ids(db_session, clock, plan):
    user = await create_user(db_session)
    await db_session.commit()

    granted = await grant_manual_subscription(
        db_session, user_id=user.id, plan_id=plan.id, duration_days=7, clock=clock
    )
    assert as_utc_aware(granted.expires_at) == clock.now() + timedelta(days=7)

    with pytest.raises(OrderValidationError) as exc:
        await grant_manual_subscription(db_session, user_id=uuid4(), plan_id=plan.id, clock=clock)
    assert exc.value.reason == "USER_NOT_FOUND"

    with pytest.raises(OrderValidationError) as exc:
        await grant_manual_subscription(db_session, user_id=user.id, plan_id=uuid4(), clock=clock)
    assert exc.value.reason == "PLAN_UNAVAILABLE"


# ─────────────────────────────────────────────────────────────
# Sweep
# ─────────────────────────────────────────────────────────────
@pytest.mark.anyio
async def test_stale_orders_fail_or_cancel_by_gateway_reach(db_session, clock, plan):
    user = await create_user(db_session)
    start = clock.now()
    never_sent = await create_order(db_session, user=user, plan=plan, created_at=start)
    abandoned = await create_order(db_session, user=user, plan=plan, created_at=start, external_payment_id="pay_x")
    fresh = await create_order(db_session, user=user, plan=plan, created_at=start + timedelta(hours=20))
    paid = await create_order(db_session, user=user, plan=plan, created_at=start, status=OrderStatus.PAID)
    await db_session.commit()
    ids = {name: o.id for name, o in (("never_sent", never_sent), ("abandoned", abandoned), ("fresh", fresh), ("paid", paid))}

    clock.advance(hours=30)
    assert await expire_stale_orders(db_session, clock=clock) == 2

    statuses = {
        name: (await db_session.get(Order, order_id, populate_existing=True)).order_status
        for name, order_id in ids.items()
    }
    assert statuses == {
        "never_sent": OrderStatus.FAILED,
        "abandoned": OrderStatus.CANCELLED,
        "fresh": OrderStatus.PENDING,
        "paid": OrderStatus.PAID,
    }


@pytest.mark.anyio
async def test_run_expiry_sweep_uses_its_own_session(db_session, session_factory, clock, plan):
    user = await create_user(db_session)
    await create_subscription(db_session, user=user, plan=plan, started_at=clock.now() - timedelta(days=31))
    await create_subscription(db_session, user=user, plan=plan, started_at=clock.now())
    await create_order(db_session, user=user, plan=plan, created_at=clock.now() - timedelta(days=2))
    await db_session.commit()

    counts = await run_expiry_sweep(clock=clock, session_factory=session_factory)

    assert counts == {"subscriptions": 1, "orders": 1}
    rows = (await db_session.execute(select(Subscription.status))).scalars().all()
    assert sorted(s.value for s in rows) == ["active", "expired"]
