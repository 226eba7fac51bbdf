"""
Sleep data models.

Sources produce :class:`RawSleepRecord` values; the normalizer turns each
record into at most two canonical :class:`SleepEvent` values (one sleep,
one wake), and the merger orders them into a :class:`MergedEventSequence`.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import StrEnum
from typing import Any


class EventKind(StrEnum):
    """Sleep sorts before wake at the same instant."""

    SLEEP = "sleep"
    WAKE = "wake"

    @property
    def tiebreak(self) -> int:
        return 0 if self is EventKind.SLEEP else 1


@dataclass(frozen=True)
class DateWindow:
    """Inclusive range of local calendar days."""

    start: date
    end: date

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError(f"Window ends before it starts: {self.start} > {self.end}")

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def padded(self, days: int = 1) -> DateWindow:
        return DateWindow(self.start - timedelta(days=days), self.end + timedelta(days=days))

    def dates(self) -> list[date]:
        return [self.start + timedelta(days=i) for i in range(self.days)]

    def __str__(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"


@dataclass(frozen=True)
class RawSleepRecord:
    """One sleep session as reported by a source.

    Times are epoch seconds. Everything except the two endpoints is optional;
    sources fill in what they know.
    """

    start_time: float
    end_time: float
    sleep_duration_hours: float | None = None
    stage_hours: Mapping[str, float] = field(default_factory=dict)
    description: str | None = None
    deep_sleep_percent: float | None = None
    cycles: int | None = None
    noise_percent: float | None = None
    snoring: str | None = None
    comment: str | None = None
    graph: str | None = None
    location: str | None = None
    sleep_quality: float | None = None
    efficiency: float | None = None
    source: str = ""

    def __post_init__(self):
        if self.end_time < self.start_time:
            raise ValueError(f"Sleep record ends before it starts: {self.start_time} > {self.end_time}")

    @property
    def span_hours(self) -> float:
        return (self.end_time - self.start_time) / 3600


@dataclass(frozen=True)
class SleepEvent:
    """A canonical sleep or wake point in local time.

    Use :meth:`sleep` and :meth:`wake` rather than the constructor; only
    wake events carry a duration. ``measurements`` holds per-night values
    (deep sleep, quality) for the measurement tables and is not part of
    equality.
    """

    kind: EventKind
    date: str
    time: str
    duration_hours: float | None = None
    user_id: str = ""
    source: str = ""
    measurements: Mapping[str, float] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self):
        if self.kind is EventKind.SLEEP and self.duration_hours is not None:
            raise ValueError("Sleep events never carry a duration")

    @classmethod
    def sleep(cls, date: str, time: str, user_id: str = "", source: str = "") -> SleepEvent:
        return cls(EventKind.SLEEP, date, time, None, user_id, source)

    @classmethod
    def wake(
        cls,
        date: str,
        time: str,
        duration_hours: float | None = None,
        user_id: str = "",
        source: str = "",
        measurements: Mapping[str, float] | None = None,
    ) -> SleepEvent:
        return cls(EventKind.WAKE, date, time, duration_hours, user_id, source, dict(measurements or {}))

    @property
    def identity(self) -> tuple[str, str, str, str]:
        return (self.kind.value, self.date, self.time, self.user_id)

    @property
    def sort_key(self) -> tuple[str, str, int]:
        return (self.date, self.time, self.kind.tiebreak)

    @property
    def is_wake(self) -> bool:
        return self.kind is EventKind.WAKE

    def with_duration(self, hours: float | None) -> SleepEvent:
        """Copy of a wake event with its duration filled in."""
        return SleepEvent.wake(self.date, self.time, hours, self.user_id, self.source, self.measurements)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "date": self.date,
            "time": self.time,
            "duration_hours": self.duration_hours,
            "user_id": self.user_id,
            "source": self.source,
        }


@dataclass(frozen=True)
class MergedEventSequence:
    """Ordered, duplicate-free events ready to materialize."""

    events: tuple[SleepEvent, ...] = ()

    def __iter__(self) -> Iterator[SleepEvent]:
        return iter(self.events)

    def __len__(self) -> int:
        return len(self.events)

    def __getitem__(self, index: int) -> SleepEvent:
        return self.events[index]

    @property
    def dates(self) -> list[str]:
        """Distinct dates in order of first appearance."""
        return list(dict.fromkeys(e.date for e in self.events))
