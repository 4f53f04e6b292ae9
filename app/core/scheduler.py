# app/core/scheduler.py
from __future__ import annotations

"""
CinePass — Recurring tasks (APScheduler)
========================================
A small wrapper that turns "run this coroutine on a schedule" into an object
with an explicit lifecycle:

    task = RecurringTask("subscription-expiry", run_sweep, CronTrigger(hour=0, minute=1))
    task.start()        # on app startup
    await task.run_once()   # on demand (admin endpoint, tests)
    task.stop()         # on app shutdown

Behavior
--------
• One `AsyncIOScheduler` per task; `start()` is idempotent, `stop()` is safe
  to call twice.
• `run_once()` is guarded: overlapping runs in the same process are skipped.
• Optional Redis lock (`lock_key`) so only one replica runs the job. When Redis
  is not connected the job runs unlocked (single-instance/dev).
• `last_run_at` / `last_result` are stamped from the injected clock.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger

from app.core.clock import Clock, system_clock
from app.core.redis_client import redis_wrapper

logger = logging.getLogger("scheduler")


class RecurringTask:
    """A named coroutine job with start/stop and an on-demand `run_once()`."""

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        trigger: BaseTrigger,
        *,
        clock: Clock = system_clock,
        lock_key: Optional[str] = None,
        lock_ttl_seconds: int = 300,
    ) -> None:
        self.name = name
        self.func = func
        self.trigger = trigger
        self.clock = clock
        self.lock_key = lock_key
        self.lock_ttl_seconds = lock_ttl_seconds

        self.last_run_at: Optional[datetime] = None
        self.last_result: Any = None
        self.runs: int = 0

        self._scheduler: Optional[AsyncIOScheduler] = None
        self._in_progress = False

    # ── lifecycle ────────────────────────────────────────────────────────────
    @property
    def running(self) -> bool:
        return bool(self._scheduler and self._scheduler.running)

    def start(self) -> None:
        """Register the job and start the scheduler (requires a running loop)."""
        if self.running:
            logger.debug("Task %s already started", self.name)
            return
        scheduler = AsyncIOScheduler(timezone=timezone.utc)
        scheduler.add_job(
            self.run_once,
            self.trigger,
            id=self.name,
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("Recurring task started | name=%s trigger=%s", self.name, self.trigger)

    def stop(self) -> None:
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Recurring task stopped | name=%s", self.name)

    def next_run_time(self) -> Optional[datetime]:
        if not self._scheduler:
            return None
        job = self._scheduler.get_job(self.name)
        return job.next_run_time if job else None

    # ── execution ────────────────────────────────────────────────────────────
    async def run_once(self) -> Any:
        """
        Execute the job now.

        Returns the job result, or None when skipped (already running here, or
        another replica holds the lock).
        """
        if self._in_progress:
            logger.warning("Task %s is already running; skipping", self.name)
            return None

        self._in_progress = True
        try:
            if self.lock_key and await redis_wrapper.is_connected():
                acquired = False
                try:
                    async with redis_wrapper.lock(self.lock_key, timeout=self.lock_ttl_seconds, blocking_timeout=2):
                        acquired = True
                        result = await self.func()
                except TimeoutError:
                    if acquired:
                        raise
                    logger.info("Task %s skipped; lock %s held elsewhere", self.name, self.lock_key)
                    return None
            else:
                if self.lock_key:
                    logger.warning("Redis not connected; running %s without lock", self.name)
                result = await self.func()

            self.runs += 1
            self.last_run_at = self.clock.now()
            self.last_result = result
            return result
        finally:
            self._in_progress = False


__all__ = ["RecurringTask"]
