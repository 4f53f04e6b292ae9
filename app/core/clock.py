# app/core/clock.py
from __future__ import annotations

"""
CinePass — Clock abstraction
============================
Every time-dependent decision (order payment windows, subscription expiry,
video-token lifetimes, sweep bookkeeping) reads "now" from a `Clock` that is
passed in explicitly. Production code uses `system_clock`; tests swap in a
manual clock they can advance.

Helpers
-------
- `as_utc_aware(dt)`: normalize naive/aware datetimes to aware UTC
  (SQLite hands back naive values for `DateTime(timezone=True)` columns).
- `to_epoch_ms(dt)`: absolute epoch milliseconds.
"""

from datetime import datetime, timezone
from typing import Optional, Protocol

from fastapi import Request


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


system_clock = SystemClock()


def as_utc_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """Return `dt` as an aware UTC datetime (naive values are assumed UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_epoch_ms(dt: datetime) -> int:
    return int(as_utc_aware(dt).timestamp() * 1000)


def get_clock(request: Request) -> Clock:
    """FastAPI dependency: the app-wide clock (tests override it)."""
    return getattr(request.app.state, "clock", None) or system_clock


__all__ = ["Clock", "SystemClock", "system_clock", "as_utc_aware", "to_epoch_ms", "get_clock"]
