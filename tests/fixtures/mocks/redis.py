from __future__ import annotations

"""
MockRedisClient (async) — test-grade, wrapper-compatible
========================================================
Covers the subset of Redis the app touches:

KV      : get/set(nx, ex)/setex/delete/exists/ttl
Health  : ping/close/flushall

There is deliberately no `lock()` method, so `redis_wrapper.lock()` takes its
`SET NX` spin-lock path (the one used by skinny clients).
"""

import time
from typing import Any, Dict, Optional


def _now() -> float:
    return time.time()


class MockRedisClient:
    def __init__(self) -> None:
        self.store: Dict[str, Any] = {}
        self.expirations: Dict[str, Optional[float]] = {}
        self.commands: list[tuple] = []

    # ── internals ────────────────────────────────────────────
    def _purge(self, key: str) -> None:
        exp = self.expirations.get(key)
        if exp is not None and exp <= _now():
            self.store.pop(key, None)
            self.expirations.pop(key, None)

    # ── KV ───────────────────────────────────────────────────
    async def get(self, key: str) -> Any:
        self._purge(key)
        return self.store.get(key)

    async def set(self, key: str, value: Any, ex: Optional[int] = None, nx: bool = False) -> bool:
        self.commands.append(("set", key, nx))
        self._purge(key)
        if nx and key in self.store:
            return False
        self.store[key] = value
        self.expirations[key] = _now() + ex if ex else None
        return True

    async def setex(self, key: str, ttl: int, value: Any) -> bool:
        return await self.set(key, value, ex=ttl)

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            self.commands.append(("delete", key))
            if self.store.pop(key, None) is not None:
                removed += 1
            self.expirations.pop(key, None)
        return removed

    async def exists(self, *keys: str) -> int:
        count = 0
        for key in keys:
            self._purge(key)
            count += int(key in self.store)
        return count

    async def ttl(self, key: str) -> int:
        self._purge(key)
        if key not in self.store:
            return -2
        exp = self.expirations.get(key)
        return -1 if exp is None else max(0, int(exp - _now()))

    # ── health ───────────────────────────────────────────────
    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    async def flushall(self) -> bool:
        self.store.clear()
        self.expirations.clear()
        self.commands.clear()
        return True


__all__ = ["MockRedisClient"]
