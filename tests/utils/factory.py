# tests/utils/factory.py

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.film import Film
from app.db.models.order import Order
from app.db.models.subscription import Subscription
from app.db.models.subscription_plan import SubscriptionPlan
from app.db.models.user import User
from app.db.models.user_purchased_film import UserPurchasedFilm
from app.schemas.enums import OrderStatus, OrderType, SubscriptionStatus
from tests.utils.faker import fake


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def create_user(
    session: AsyncSession,
    *,
    email: Optional[str] = None,
    full_name: Optional[str] = None,
    is_active: bool = True,
    is_admin: bool = False,
) -> User:
    """
    ✅ Create a test user (flushed, not committed).

    Args:
        session (AsyncSession): SQLAlchemy async session.
        email (str, optional): Defaults to a unique fake address.
        is_active (bool): Whether the user may authenticate.
        is_admin (bool): Unlocks the admin endpoints.
    """
    user = User(
        id=uuid4(),
        email=email or f"{uuid4().hex[:8]}.{fake.email()}",
        full_name=full_name or fake.name(),
        is_active=is_active,
        is_admin=is_admin,
        created_at=_utcnow(),
        updated_at=_utcnow(),
    )
    session.add(user)
    await session.flush()
    return user


async def create_plan(
    session: AsyncSession,
    *,
    name: Optional[str] = None,
    price: str = "299.00",
    currency: str = "RUB",
    duration_days: int = 30,
    is_active: bool = True,
) -> SubscriptionPlan:
    plan = SubscriptionPlan(
        id=uuid4(),
        name=name or f"{fake.word().title()} plan",
        description=fake.sentence(),
        price=Decimal(price),
        currency=currency,
        duration_days=duration_days,
        is_active=is_active,
        created_at=_utcnow(),
    )
    session.add(plan)
    await session.flush()
    return plan


async def create_film(
    session: AsyncSession,
    *,
    name: Optional[str] = None,
    is_paid: bool = True,
    price: Optional[str] = "149.00",
    currency: str = "RUB",
    film_url: Optional[str] = None,
    is_visible: bool = True,
) -> Film:
    film = Film(
        id=uuid4(),
        name=name or fake.catch_phrase(),
        film_url=film_url,
        is_visible=is_visible,
        is_paid=is_paid,
        price=Decimal(price) if (price is not None and is_paid) else None,
        currency=currency,
        created_at=_utcnow(),
    )
    session.add(film)
    await session.flush()
    return film


async def create_order(
    session: AsyncSession,
    *,
    user: User,
    plan: Optional[SubscriptionPlan] = None,
    film: Optional[Film] = None,
    status: OrderStatus = OrderStatus.PENDING,
    external_payment_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
    window_hours: int = 24,
) -> Order:
    """Order row inserted directly (no gateway call)."""
    created = created_at or _utcnow()
    target = plan if plan is not None else film
    order = Order(
        id=uuid4(),
        user_id=user.id,
        order_type=OrderType.SUBSCRIPTION if plan is not None else OrderType.FILM,
        plan_id=plan.id if plan is not None else None,
        film_id=film.id if film is not None else None,
        amount=target.price,
        currency=target.currency,
        order_status=status,
        payment_method="bank_card",
        external_payment_id=external_payment_id,
        created_at=created,
        updated_at=created,
        expires_at=created + timedelta(hours=window_hours),
    )
    session.add(order)
    await session.flush()
    return order


async def create_subscription(
    session: AsyncSession,
    *,
    user: User,
    plan: SubscriptionPlan,
    started_at: datetime,
    days: Optional[int] = None,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    order: Optional[Order] = None,
) -> Subscription:
    subscription = Subscription(
        id=uuid4(),
        user_id=user.id,
        plan_id=plan.id,
        order_id=order.id if order is not None else None,
        status=status,
        started_at=started_at,
        expires_at=started_at + timedelta(days=days or plan.duration_days),
        auto_renew=False,
        created_at=started_at,
    )
    session.add(subscription)
    await session.flush()
    return subscription


async def create_purchase(
    session: AsyncSession,
    *,
    user: User,
    film: Film,
    order: Order,
    purchased_at: datetime,
    expires_at: Optional[datetime] = None,
) -> UserPurchasedFilm:
    purchase = UserPurchasedFilm(
        id=uuid4(),
        user_id=user.id,
        film_id=film.id,
        order_id=order.id,
        purchased_at=purchased_at,
        expires_at=expires_at,
    )
    session.add(purchase)
    await session.flush()
    return purchase
