# tests/fixtures/clock.py
"""
⏱️ Manual clock: time only moves when a test says so.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

DEFAULT_START = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class ManualClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self._now = start or DEFAULT_START

    def now(self) -> datetime:
        return self._now

    def advance(self, **delta) -> datetime:
        self._now = self._now + timedelta(**delta)
        return self._now

    def set(self, when: datetime) -> None:
        self._now = when


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()
