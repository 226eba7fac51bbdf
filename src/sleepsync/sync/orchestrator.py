"""Fetch, normalize, merge and materialize one sync window.

A sync runs in four steps:

1. pick the window: an explicit ``start..end`` or the last ``default_days``
   days, fetched with one extra day on each side;
2. fetch records from the calendar source, falling back to Google Fit when
   the calendar fails or has nothing;
3. normalize and merge the records into one ordered event sequence;
4. write each event, strictly one after another, to every enabled
   destination, reporting progress after each.

Destinations for a single call are passed in the :class:`SyncRequest`;
the orchestrator's own defaults are never modified.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import StrEnum
from typing import Any

from loguru import logger

from sleepsync.core.clock import Clock
from sleepsync.core.events import SYNC_CANCELLED, SYNC_COMPLETED, SYNC_FAILED, SYNC_PROGRESS, SYNC_STARTED, EventBus
from sleepsync.core.exceptions import NoSleepDataError, SyncCancelledError

from ..journal.config import CategoryConfig
from ..journal.measurements import MeasurementWriter
from ..journal.writer import MaterializationWriter, WriteResult
from ..sleep.merger import ProgressTracker, merge_events
from ..sleep.models import DateWindow, RawSleepRecord, SleepEvent
from ..sleep.normalizer import EventNormalizer
from ..sleep.source import SleepSource

ProgressCallback = Callable[[int, int], Any]


class SyncStatus(StrEnum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CancellationToken:
    """Cooperative cancel flag, checked between events."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SyncCancelledError("Sync cancelled")

    async def wait(self) -> None:
        await self._event.wait()


@dataclass(frozen=True)
class Destinations:
    """Which outputs a sync writes to."""

    journal: bool = True
    running_log: bool = False
    measurements: bool = True

    def override(
        self, journal: bool | None = None, running_log: bool | None = None, measurements: bool | None = None
    ) -> Destinations:
        return Destinations(
            journal=self.journal if journal is None else journal,
            running_log=self.running_log if running_log is None else running_log,
            measurements=self.measurements if measurements is None else measurements,
        )


@dataclass(frozen=True)
class SyncRequest:
    """Parameters of one sync call.

    Attributes:
        start: First day (inclusive); requires ``end``.
        end: Last day (inclusive); requires ``start``.
        destinations: Outputs for this call only; None uses the configured ones.
        progress: Called with ``(days_processed, total_days)`` after each event.
        cancel: Token checked before each event.
    """

    start: date | None = None
    end: date | None = None
    destinations: Destinations | None = None
    progress: ProgressCallback | None = None
    cancel: CancellationToken | None = None

    def __post_init__(self):
        if (self.start is None) != (self.end is None):
            raise ValueError("start and end must be given together")


@dataclass
class SyncReport:
    status: SyncStatus
    window: DateWindow
    source: str = ""
    events_total: int = 0
    events_processed: int = 0
    days_processed: int = 0
    total_days: int = 0
    results: list[WriteResult] = field(default_factory=list)
    measurement_paths: list[str] = field(default_factory=list)

    @property
    def appended(self) -> int:
        return sum(1 for r in self.results if r.appended)

    @property
    def created(self) -> list[str]:
        return sorted({r.path for r in self.results if r.created})

    def summary(self) -> str:
        if self.status is SyncStatus.CANCELLED:
            return f"Sync cancelled after {self.events_processed}/{self.events_total} events"
        return (
            f"Synced {self.events_processed} events from {self.source or 'no source'} "
            f"for {self.window} ({self.appended} new entries)"
        )


class SyncOrchestrator:
    """Drives syncs and manual entries through the writers.

    Args:
        writer: Writes events into journal and running-log documents.
        journal: Per-day journal category.
        running_log: Single running sleep-log category.
        calendar: Calendar source, tried first.
        fitness: Google Fit source, used when the calendar has nothing.
        measurements: Writer for the measurement tables.
        destinations: Default outputs; per-call overrides go in SyncRequest.
        user_id: User new events are attributed to.
        default_days: Size of the rolling window, not counting today.
    """

    def __init__(
        self,
        *,
        writer: MaterializationWriter,
        journal: CategoryConfig,
        running_log: CategoryConfig,
        calendar: SleepSource | None = None,
        fitness: SleepSource | None = None,
        measurements: MeasurementWriter | None = None,
        destinations: Destinations | None = None,
        clock: Clock | None = None,
        user_id: str = "",
        default_days: int = 7,
        events: EventBus | None = None,
    ):
        self.writer = writer
        self.journal = journal
        self.running_log = running_log
        self.calendar = calendar
        self.fitness = fitness
        self.measurements = measurements
        self.clock = clock or writer.clock
        self.user_id = user_id
        self.default_days = default_days
        self.events = events or EventBus()
        self.normalizer = EventNormalizer(self.clock, user_id=user_id)
        self.destinations = destinations or Destinations(
            journal=journal.enabled,
            running_log=running_log.enabled,
            measurements=bool(measurements and measurements.config.enabled),
        )

    # ── window & fetch ───────────────────────────────────────────────

    def window_for(self, request: SyncRequest) -> DateWindow:
        if request.start is not None and request.end is not None:
            return DateWindow(request.start, request.end)
        today = self.clock.today()
        return DateWindow(today - timedelta(days=self.default_days), today)

    async def fetch(self, window: DateWindow) -> tuple[str, list[RawSleepRecord]]:
        """Records for the window padded by a day; calendar first, then Google Fit."""
        padded = window.padded(1)
        start = self.clock.start_of_day(padded.start)
        end = self.clock.end_of_day(padded.end)

        if self.calendar is not None:
            try:
                records = await self.calendar.fetch_events(start, end)
            except Exception as e:
                logger.warning(f"Failed to get calendar sleep data, falling back to Google Fit: {e}")
            else:
                if records:
                    return self.calendar.name, records
                logger.warning("Calendar returned no sleep data, falling back to Google Fit")

        if self.fitness is not None:
            records = await self.fitness.fetch_events(start, end)
            if records:
                return self.fitness.name, records

        raise NoSleepDataError("No sleep data found from any source")

    def events_for(self, records: list[RawSleepRecord], window: DateWindow) -> list[SleepEvent]:
        """Normalize against the padded window, keeping sessions that touch the requested one."""
        padded = window.padded(1)
        batch: list[SleepEvent] = []
        for record in records:
            events = self.normalizer.normalize(record, padded)
            if any(window.contains(date.fromisoformat(e.date)) for e in events):
                batch.extend(events)
        return batch

    # ── writing ──────────────────────────────────────────────────────

    async def materialize(self, event: SleepEvent, destinations: Destinations) -> tuple[list[WriteResult], list[str]]:
        """Write one event to every enabled destination."""
        results = []
        if destinations.journal:
            results.append(await self.writer.write(event, self.journal))
        if destinations.running_log:
            results.append(await self.writer.write(event, self.running_log))

        paths: list[str] = []
        if destinations.measurements and self.measurements is not None and event.is_wake:
            values = dict(event.measurements)
            duration = event.duration_hours
            if duration is None:
                duration = next((r.duration_hours for r in results if r.duration_hours is not None), None)
            if duration is not None:
                values.setdefault("Total Sleep", duration)
            paths = await self.measurements.record(event.date, event.user_id, values)
        return results, paths

    async def record_manual(
        self, kind: str, day: date, time_text: str, destinations: Destinations | None = None
    ) -> list[WriteResult]:
        """Write a hand-entered sleep or wake; a wake gets its duration back-filled."""
        date_text = day.isoformat()
        if kind == "sleep":
            event = SleepEvent.sleep(date_text, time_text, user_id=self.user_id, source="manual")
        elif kind == "wake":
            event = SleepEvent.wake(date_text, time_text, user_id=self.user_id, source="manual")
        else:
            raise ValueError(f"Unknown event kind: {kind!r}")
        results, _ = await self.materialize(event, destinations or self.destinations)
        return results

    async def latest_record(self) -> RawSleepRecord | None:
        """Most recent night: calendar first, then Google Fit."""
        if self.calendar is not None:
            try:
                record = await self.calendar.latest_record()
            except Exception as e:
                logger.warning(f"Failed to get calendar sleep data, falling back to Google Fit: {e}")
            else:
                if record is not None:
                    return record
        if self.fitness is not None:
            return await self.fitness.latest_record()
        return None

    # ── sync ─────────────────────────────────────────────────────────

    async def _report_progress(self, request: SyncRequest, done: int, total: int) -> None:
        if request.progress is not None:
            result = request.progress(done, total)
            if inspect.isawaitable(result):
                await result
        await self.events.publish(SYNC_PROGRESS, source="sync", days_processed=done, total_days=total)

    async def sync(self, request: SyncRequest | None = None) -> SyncReport:
        request = request or SyncRequest()
        destinations = request.destinations or self.destinations
        cancel = request.cancel or CancellationToken()
        window = self.window_for(request)
        report = SyncReport(status=SyncStatus.COMPLETED, window=window, total_days=window.days)

        logger.info(f"Syncing sleep data for {window}")
        await self.events.publish(SYNC_STARTED, source="sync", window=str(window))
        try:
            cancel.raise_if_cancelled()
            report.source, records = await self.fetch(window)
            merged = merge_events(self.events_for(records, window))
            report.events_total = len(merged)

            tracker = ProgressTracker(window)
            for event in merged:
                cancel.raise_if_cancelled()
                results, paths = await self.materialize(event, destinations)
                report.results.extend(results)
                report.measurement_paths.extend(p for p in paths if p not in report.measurement_paths)
                report.events_processed += 1
                report.days_processed, _ = tracker.record(event)
                await self._report_progress(request, *tracker.progress)
        except SyncCancelledError:
            report.status = SyncStatus.CANCELLED
            logger.info(report.summary())
            await self.events.publish(SYNC_CANCELLED, source="sync", **self._payload(report))
            return report
        except Exception as e:
            logger.error(f"Failed to sync sleep data: {e}")
            await self.events.publish(SYNC_FAILED, source="sync", window=str(window), error=str(e))
            raise

        logger.info(report.summary())
        await self.events.publish(SYNC_COMPLETED, source="sync", **self._payload(report))
        return report

    @staticmethod
    def _payload(report: SyncReport) -> dict[str, Any]:
        return {
            "window": str(report.window),
            "data_source": report.source,
            "events": report.events_processed,
            "appended": report.appended,
            "created": report.created,
        }
