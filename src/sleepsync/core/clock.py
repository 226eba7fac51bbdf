"""Injected time capability.

Everything that needs "now", local-day arithmetic or a backoff sleep takes
a :class:`Clock` instead of calling ``datetime.now()`` / ``asyncio.sleep``
directly, so tests can swap in a clock that never really waits.
"""

from __future__ import annotations

import asyncio
import time as _time
from abc import ABC, abstractmethod
from datetime import date, datetime, time, tzinfo


class Clock(ABC):
    """Time source plus the local-calendar helpers built on it.

    Args:
        tz: Timezone used for local days. ``None`` means the system zone.
    """

    def __init__(self, tz: tzinfo | None = None):
        self.tz = tz

    @abstractmethod
    def now(self) -> datetime:
        """Current aware datetime in the clock's zone."""

    @abstractmethod
    def monotonic(self) -> float:
        """Monotonic seconds, for spacing and timeouts."""

    @abstractmethod
    async def sleep(self, seconds: float) -> None:
        """Suspend the calling task."""

    # ── local-calendar helpers ───────────────────────────────────────

    def now_ms(self) -> int:
        return int(self.now().timestamp() * 1000)

    def today(self) -> date:
        return self.now().date()

    def _localize(self, naive: datetime) -> datetime:
        if self.tz is not None:
            return naive.replace(tzinfo=self.tz)
        return naive.astimezone()

    def from_timestamp(self, seconds: float) -> datetime:
        """Epoch seconds to an aware local datetime."""
        if self.tz is not None:
            return datetime.fromtimestamp(seconds, self.tz)
        return datetime.fromtimestamp(seconds).astimezone()

    def at(self, day: date, at_time: time) -> datetime:
        return self._localize(datetime.combine(day, at_time))

    def local_noon(self, day: date) -> datetime:
        """Noon on *day*; formatting at noon keeps DST shifts off the date."""
        return self.at(day, time(12, 0))

    def start_of_day(self, day: date) -> datetime:
        return self.at(day, time.min)

    def end_of_day(self, day: date) -> datetime:
        return self.at(day, time(23, 59, 59, 999999))


class SystemClock(Clock):
    """Wall clock backed by :mod:`datetime`, :mod:`time` and :func:`asyncio.sleep`."""

    def now(self) -> datetime:
        if self.tz is not None:
            return datetime.now(self.tz)
        return datetime.now().astimezone()

    def monotonic(self) -> float:
        return _time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))
