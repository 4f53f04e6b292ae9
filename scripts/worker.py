from __future__ import annotations

"""
Dedicated maintenance worker for the subscription/order expiry sweep.

Use this when the API replicas run with SUBSCRIPTION_SWEEP_ENABLED=false and
the sweep should live in its own process. The sweep takes the same Redis lock
as the in-app task, so running both is safe.

Run:
  python scripts/worker.py            # daily schedule, runs until interrupted
  python scripts/worker.py --once     # one sweep, print the counts, exit
"""

import argparse
import asyncio
import logging

from app.core.logger import configure_logging
from app.core.redis_client import redis_wrapper
from app.db.session import async_engine
from app.services.expiry_service import build_expiry_task

logger = logging.getLogger("worker")


async def _run(once: bool) -> None:
    try:
        await redis_wrapper.connect()
    except Exception:
        logger.exception("Redis connect failed; the sweep will run without a lock")

    task = build_expiry_task()
    try:
        if once:
            result = await task.run_once()
            logger.info("Expiry sweep finished | result=%s", result)
            print(result)
            return

        task.start()
        logger.info("Worker started | next_run=%s", task.next_run_time())
        await asyncio.Event().wait()
    finally:
        task.stop()
        await async_engine.dispose()
        await redis_wrapper.close()


def main() -> None:
    ap = argparse.ArgumentParser(description="CinePass maintenance worker")
    ap.add_argument("--once", action="store_true", help="Run a single sweep and exit")
    args = ap.parse_args()

    configure_logging()
    try:
        asyncio.run(_run(args.once))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
