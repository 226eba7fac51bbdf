"""
Merge event batches into one ordered sequence and track sync progress.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from loguru import logger

from .models import DateWindow, MergedEventSequence, SleepEvent


def merge_events(*batches: list[SleepEvent]) -> MergedEventSequence:
    """Concatenate, drop exact duplicates, sort by ``(date, time, sleep-before-wake)``.

    Duplicates share ``(kind, date, time, user_id)``; the first one seen wins.
    There is no fuzzy matching across sources.
    """
    seen: set[tuple[str, str, str, str]] = set()
    unique: list[SleepEvent] = []
    dropped = 0
    for batch in batches:
        for event in batch:
            if event.identity in seen:
                dropped += 1
                continue
            seen.add(event.identity)
            unique.append(event)

    if dropped:
        logger.debug(f"Dropped {dropped} duplicate events")
    unique.sort(key=lambda e: e.sort_key)
    return MergedEventSequence(tuple(unique))


@dataclass
class ProgressTracker:
    """Counts distinct days of *window* touched so far.

    Events dated on the padding days around the window are synced but do not
    count as progress.
    """

    window: DateWindow
    _seen: set[date] = field(default_factory=set, repr=False)

    @property
    def total_days(self) -> int:
        return self.window.days

    def record(self, event: SleepEvent) -> tuple[int, int]:
        day = date.fromisoformat(event.date)
        if self.window.contains(day):
            self._seen.add(day)
        return self.progress

    @property
    def days_processed(self) -> int:
        return len(self._seen)

    @property
    def progress(self) -> tuple[int, int]:
        return (self.days_processed, self.total_days)
