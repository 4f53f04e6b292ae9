#!/usr/bin/env python3
"""
CinePass • Seed Subscription Plans
==================================

Inserts the default plan catalogue (skips names that already exist).

Usage
-----
    python scripts/seed_plans.py
    python scripts/seed_plans.py --currency USD
"""

import argparse
import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import select

from app.core.logger import configure_logging
from app.db.models.subscription_plan import SubscriptionPlan
from app.db.session import async_engine, session_scope

DEFAULT_PLANS = [
    ("Weekly", "Seven days of the full catalogue", Decimal("99.00"), 7),
    ("Monthly", "Thirty days of the full catalogue", Decimal("299.00"), 30),
    ("Yearly", "A year of the full catalogue", Decimal("2990.00"), 365),
]


async def seed(currency: str) -> int:
    created = 0
    async with session_scope() as db:
        existing = set((await db.execute(select(SubscriptionPlan.name))).scalars().all())
        for name, description, price, days in DEFAULT_PLANS:
            if name in existing:
                print(f"skip  {name}")
                continue
            db.add(
                SubscriptionPlan(
                    id=uuid4(),
                    name=name,
                    description=description,
                    price=price,
                    currency=currency,
                    duration_days=days,
                    is_active=True,
                    created_at=datetime.now(timezone.utc),
                )
            )
            created += 1
            print(f"add   {name} ({price} {currency}, {days} days)")
        await db.commit()
    await async_engine.dispose()
    return created


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--currency", default="RUB", help="ISO currency for the seeded plans")
    args = ap.parse_args()

    configure_logging()
    created = asyncio.run(seed(args.currency.upper()))
    print(f"Created {created} plan(s).")


if __name__ == "__main__":
    main()
