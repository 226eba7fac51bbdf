"""
Turn raw source records into canonical sleep/wake events.

Each record yields a sleep event for its start and a wake event for its
end, each only when that endpoint falls on a local day inside the window.
Callers pass a window padded by a day on each side so sessions crossing
midnight at either edge keep both halves.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from loguru import logger

from sleepsync.core.clock import Clock
from sleepsync.core.dates import ISO_DATE_FORMAT, format_date, format_time_24

from .models import DateWindow, RawSleepRecord, SleepEvent

MINUTES_PER_DAY = 24 * 60


def round_half_up(value: float, places: int = 1) -> float:
    """Round like a person would: ``0.75 -> 0.8`` (not banker's rounding)."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _minutes(hhmm: str) -> int:
    hours, minutes = hhmm.strip().split(":")[:2]
    return int(hours) * 60 + int(minutes)


def compute_duration_hours(sleep_time: str, wake_time: str) -> float:
    """Hours between two ``HH:mm`` times, wrapping past midnight.

    >>> compute_duration_hours("23:30", "07:00")
    7.5
    """
    diff = _minutes(wake_time) - _minutes(sleep_time)
    if diff < 0:
        diff += MINUTES_PER_DAY
    return round_half_up(max(diff, 0) / 60)


def record_measurements(record: RawSleepRecord, duration: float | None) -> dict[str, float]:
    """Per-night values keyed by measurement name."""
    values: dict[str, float] = {}
    if duration is not None:
        values["Total Sleep"] = duration

    deep = record.stage_hours.get("deep")
    if deep is None and record.deep_sleep_percent is not None and duration is not None:
        deep = duration * record.deep_sleep_percent / 100
    if deep is not None:
        values["Deep Sleep"] = round_half_up(deep)
    if "light" in record.stage_hours:
        values["Light Sleep"] = round_half_up(record.stage_hours["light"])
    if "rem" in record.stage_hours:
        values["REM Sleep"] = round_half_up(record.stage_hours["rem"])
    if record.sleep_quality is not None:
        values["Sleep Quality"] = round_half_up(record.sleep_quality)
    return values


class EventNormalizer:
    """Map records to events in the clock's local time."""

    def __init__(self, clock: Clock, user_id: str = ""):
        self.clock = clock
        self.user_id = user_id

    def normalize(self, record: RawSleepRecord, window: DateWindow) -> list[SleepEvent]:
        start = self.clock.from_timestamp(record.start_time)
        end = self.clock.from_timestamp(record.end_time)
        events: list[SleepEvent] = []

        if window.contains(start.date()):
            events.append(
                SleepEvent.sleep(
                    format_date(start, ISO_DATE_FORMAT),
                    format_time_24(start),
                    user_id=self.user_id,
                    source=record.source,
                )
            )

        if window.contains(end.date()):
            duration = None
            if record.sleep_duration_hours is not None:
                duration = round_half_up(record.sleep_duration_hours)
            events.append(
                SleepEvent.wake(
                    format_date(end, ISO_DATE_FORMAT),
                    format_time_24(end),
                    duration,
                    user_id=self.user_id,
                    source=record.source,
                    measurements=record_measurements(record, duration),
                )
            )

        if not events:
            logger.debug(f"Record {start.isoformat()} -> {end.isoformat()} lies outside {window}")
        return events

    def normalize_all(self, records: Iterable[RawSleepRecord], window: DateWindow) -> list[SleepEvent]:
        events: list[SleepEvent] = []
        for record in records:
            events.extend(self.normalize(record, window))
        return events
