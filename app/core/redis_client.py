# app/core/redis_client.py
from __future__ import annotations

"""
CinePass — Redis Client (Async)
===============================
Central, **single source of truth** for Redis access in the app.

What this provides
------------------
• Resilient connection manager with retries & backoff
• Pooled async client with health checks
• Async **distributed lock** (native lock preferred; `SET NX` fallback)

Who uses it
-----------
- `app.core.jwt`: the access-token revocation lane
  (`revoked:jti:{jti}`)
- `app.core.scheduler`: replica-safe locks around scheduled sweeps
- `/readyz`: connectivity probe

Public API (imported as `redis_wrapper`)
----------------------------------------
- await redis_wrapper.connect() / await redis_wrapper.close() / await redis_wrapper.is_connected()
- redis_wrapper.client
- async with redis_wrapper.lock(name, timeout=10, blocking_timeout=3): ...
"""

import asyncio
import inspect
import logging
import os
import random
import time
from contextlib import asynccontextmanager
from typing import Any, Optional
from urllib.parse import urlparse

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.core.config import settings

logger = logging.getLogger("redis")

# ─────────────────────────────────────────────────────────────────────────────
# Tunables (env-aware sensible defaults)
# ─────────────────────────────────────────────────────────────────────────────
MAX_RETRIES = int(os.getenv("REDIS_CONNECT_MAX_RETRIES", "5"))
BASE_DELAY = float(os.getenv("REDIS_CONNECT_BASE_DELAY", "0.3"))  # seconds
HEALTH_CHECK_INTERVAL = int(os.getenv("REDIS_HEALTH_CHECK_INTERVAL", "30"))  # seconds
SOCKET_TIMEOUT = float(os.getenv("REDIS_SOCKET_TIMEOUT", "3"))
SOCKET_CONNECT_TIMEOUT = float(os.getenv("REDIS_SOCKET_CONNECT_TIMEOUT", "3"))
POOL_MAX_CONNECTIONS = int(os.getenv("REDIS_POOL_MAX_CONNECTIONS", "64"))
CLIENT_NAME = os.getenv("REDIS_CLIENT_NAME", "cinepass-api")


# ─────────────────────────────────────────────────────────────────────────────
# Client
# ─────────────────────────────────────────────────────────────────────────────
class RedisClient:
    """
    Singleton Redis connection manager (asyncio).

    Features
    --------
    • Resilient connect with exponential backoff + jitter
    • Pooled connections, health checks
    • Async distributed lock helper
    """

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self._client: Optional[Any] = None

    # ── lifecycle ────────────────────────────────────────────────────────────
    async def connect(self) -> None:
        """
        Establish a connection with retries.

        Steps
        -----
        - **[Step 1]** Reuse a healthy client when possible.
        - **[Step 2]** Attempt connection with backoff and jitter.
        """
        # ── [Step 1] Reuse an existing healthy client ───────────────────────
        if self._client:
            try:
                await self._client.ping()
                logger.debug("Redis already connected.")
                return
            except Exception:
                self._client = None  # stale client → reconnect

        attempt = 0
        last_err: Optional[Exception] = None

        # ── [Step 2] Retry with backoff ─────────────────────────────────────
        while attempt < MAX_RETRIES:
            attempt += 1
            try:
                self._client = self._build_client()
                await self._client.ping()
                logger.info("✅ Connected to Redis")
                return
            except Exception as e:  # noqa: BLE001
                last_err = e
                self._client = None
                delay = self._backoff(attempt)
                logger.warning(
                    "Redis connect attempt %s/%s failed: %s (retrying in %.2fs)",
                    attempt, MAX_RETRIES, repr(e), delay,
                )
                await asyncio.sleep(delay)

        logger.error("❌ Redis connection failed after %s retries.", MAX_RETRIES)
        raise RuntimeError("Redis connection failed") from last_err

    async def close(self) -> None:
        """Gracefully close connection & pool."""
        if not self._client:
            return
        try:
            await self._client.close()
            logger.info("🛑 Redis connection closed.")
        except RedisError as e:
            logger.warning("Error closing Redis connection: %s", e)
        finally:
            self._client = None

    async def is_connected(self) -> bool:
        """Return True if `PING` succeeds (healthy connection)."""
        if not self._client:
            return False
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False

    @property
    def client(self) -> Any:
        """Low-level client; ensure `connect()` was called at startup."""
        if not self._client:
            raise RuntimeError("Redis client not initialized. Call connect() first.")
        return self._client

    # ── helpers: lock ────────────────────────────────────────────────────────
    @asynccontextmanager
    async def lock(
        self,
        name: str,
        *,
        timeout: int = 10,
        blocking_timeout: int = 3,
        sleep: float = 0.2,
    ):
        """
        Async distributed lock.

        Priority & Behavior
        -------------------
        1) **Native Redis lock** (`client.lock(...)`), released in `finally`.
        2) **SET NX spin-lock** for skinny clients; only the owner token
           releases the key.

        Failure semantics
        -----------------
        - If Redis is **not connected**, raise `RuntimeError`.
        - If not acquired within `blocking_timeout`, raise built-in `TimeoutError`.
        """
        rc = self.client

        if hasattr(rc, "lock"):
            lock_obj = rc.lock(name, timeout=timeout, blocking_timeout=blocking_timeout, sleep=sleep)
            res = lock_obj.acquire(blocking=True, blocking_timeout=blocking_timeout)
            acquired = bool(await res if inspect.isawaitable(res) else res)
            if not acquired:
                raise TimeoutError(f"Failed to acquire lock: {name}")
            try:
                yield
            finally:
                try:
                    rel = lock_obj.release()
                    if inspect.isawaitable(rel):
                        await rel
                except RedisError:
                    logger.debug("Redis native lock release failed (best-effort).", exc_info=True)
            return

        token = f"{time.time_ns()}-{os.getpid()}-{random.randint(0, 1_000_000)}"
        deadline = time.monotonic() + max(0.0, float(blocking_timeout))
        acquired = False
        while time.monotonic() < deadline:
            if await rc.set(name, token, ex=int(timeout), nx=True):
                acquired = True
                break
            await asyncio.sleep(sleep)
        if not acquired:
            raise TimeoutError(f"Failed to acquire lock: {name}")
        try:
            yield
        finally:
            val = await rc.get(name)
            if isinstance(val, (bytes, bytearray)):
                val = val.decode("utf-8", errors="ignore")
            if val == token:
                await rc.delete(name)

    # ── internals ───────────────────────────────────────────────────────────
    def _build_client(self) -> Any:
        """Instantiate a pooled Redis client from the URL."""
        url = self.redis_url.strip()
        client_kwargs: dict[str, Any] = dict(
            decode_responses=True,
            health_check_interval=HEALTH_CHECK_INTERVAL,
            socket_keepalive=True,
            socket_timeout=SOCKET_TIMEOUT,
            socket_connect_timeout=SOCKET_CONNECT_TIMEOUT,
            retry_on_timeout=True,
            max_connections=POOL_MAX_CONNECTIONS,
            client_name=CLIENT_NAME,
        )
        if urlparse(url).scheme == "rediss":
            cert_reqs = os.getenv("REDIS_SSL_CERT_REQS", "required").lower()
            if cert_reqs == "none":  # dev only
                client_kwargs["ssl_cert_reqs"] = None
        return redis.Redis.from_url(url, **client_kwargs)

    @staticmethod
    def _backoff(attempt: int) -> float:
        # Exponential backoff with jitter (cap at 3s)
        return min(3.0, BASE_DELAY * (2 ** (attempt - 1))) + random.uniform(0, 0.25)


# ─────────────────────────────────────────────────────────────────────────────
# Singleton instance
# ─────────────────────────────────────────────────────────────────────────────
redis_wrapper = RedisClient(settings.REDIS_URL)

__all__ = ["RedisClient", "redis_wrapper"]
