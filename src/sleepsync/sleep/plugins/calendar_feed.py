"""
Calendar-feed sleep source.

Sleep trackers such as Sleep as Android can publish every night as a
calendar event whose description holds the details::

    Duration: 7:32
    Deep sleep: 38%
    Cycles: 5
    Noise: 12%
    Snoring: 4 min
    Comment: #home
    ▁▂▅▇█▇▅▂▁

The feed itself is abstracted as :class:`CalendarFeed`; the bundled
:class:`IcsCalendarFeed` downloads an iCalendar URL with urllib and parses
it with ``icalendar`` (``pip install sleepsync[calendar]``).
"""

from __future__ import annotations

import asyncio
import re
import urllib.error
import urllib.request
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Protocol, runtime_checkable

from loguru import logger

from sleepsync.core.exceptions import APIError, DataProcessingError

from ..models import RawSleepRecord
from ..source import BaseSource

DEFAULT_SUMMARY_MARKER = "Sleep as Android"

_HOURS_RE = re.compile(r"(\d+):(\d+)")
_PERCENT_RE = re.compile(r"(\d+(?:\.\d+)?)%")
_INT_RE = re.compile(r"(\d+)")
_GRAPH_RE = re.compile(r"^[▁▂▃▄▅▆▇█]+$")


@dataclass(frozen=True)
class CalendarEntry:
    """One calendar event with aware start/end datetimes."""

    summary: str
    start: datetime
    end: datetime
    description: str = ""
    location: str = ""


@runtime_checkable
class CalendarFeed(Protocol):
    """Anything that can list calendar entries."""

    async def entries(self) -> list[CalendarEntry]:
        ...


def parse_time_to_hours(text: str) -> float | None:
    """``"7:32"`` -> 7.533…; None when no ``H:MM`` is present."""
    match = _HOURS_RE.search(text)
    if not match:
        return None
    return int(match.group(1)) + int(match.group(2)) / 60


def parse_sleep_description(description: str) -> dict[str, Any]:
    """Extract the known fields from a tracker description.

    Returns only the fields that parsed; malformed lines are skipped.
    """
    details: dict[str, Any] = {}
    for raw_line in description.splitlines():
        line = raw_line.strip()
        if line.startswith("Duration:"):
            hours = parse_time_to_hours(line[len("Duration:") :])
            if hours:
                details["sleep_duration_hours"] = hours
        elif line.startswith("Deep sleep:"):
            match = _PERCENT_RE.search(line)
            if match:
                details["deep_sleep_percent"] = float(match.group(1))
        elif line.startswith("Cycles:"):
            match = _INT_RE.search(line)
            if match:
                details["cycles"] = int(match.group(1))
        elif line.startswith("Noise:"):
            match = _PERCENT_RE.search(line)
            if match:
                details["noise_percent"] = float(match.group(1))
        elif line.startswith("Snoring:"):
            details["snoring"] = line[len("Snoring:") :].strip()
        elif line.startswith("Comment:"):
            details["comment"] = line[len("Comment:") :].strip()
        elif _GRAPH_RE.match(line):
            details["graph"] = line
    return details


def entry_to_record(entry: CalendarEntry, source: str = "calendar") -> RawSleepRecord:
    """Build a record from an entry; description values win over the event span."""
    details = parse_sleep_description(entry.description or "")
    start = entry.start.timestamp()
    end = entry.end.timestamp()
    duration = details.pop("sleep_duration_hours", (end - start) / 3600)

    stage_hours: dict[str, float] = {}
    efficiency = None
    percent = details.get("deep_sleep_percent")
    if percent is not None:
        stage_hours["deep"] = duration * percent / 100
        stage_hours["light"] = duration - stage_hours["deep"]
        efficiency = percent / 100

    return RawSleepRecord(
        start_time=int(start),
        end_time=int(end),
        sleep_duration_hours=duration,
        stage_hours=stage_hours,
        description=entry.description or None,
        location=entry.location or None,
        efficiency=efficiency,
        source=source,
        **details,
    )


class IcsCalendarFeed:
    """iCalendar feed fetched over HTTP(S)."""

    def __init__(self, url: str, timeout: int = 30):
        if not url:
            raise ValueError("url is required")
        self.url = url
        self.timeout = timeout

    def _download(self) -> str:
        req = urllib.request.Request(self.url, headers={"Accept": "text/calendar"})
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                return resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as e:
            raise APIError(f"Calendar feed {e.code}: {e.reason}", status=e.code) from e
        except urllib.error.URLError as e:
            raise APIError(f"Calendar feed request failed: {e}") from e

    @staticmethod
    def parse(text: str) -> list[CalendarEntry]:
        try:
            from icalendar import Calendar
        except ImportError:
            raise ImportError("Install with: pip install sleepsync[calendar]")

        try:
            calendar = Calendar.from_ical(text)
        except ValueError as e:
            raise DataProcessingError(f"Could not parse calendar feed: {e}") from e

        entries = []
        for component in calendar.walk("VEVENT"):
            if component.get("DTSTART") is None:
                continue
            start = _as_datetime(component.decoded("DTSTART"))
            if component.get("DTEND") is not None:
                end = _as_datetime(component.decoded("DTEND"))
            elif component.get("DURATION") is not None:
                end = start + component.decoded("DURATION")
            else:
                end = start
            entries.append(
                CalendarEntry(
                    summary=str(component.get("SUMMARY", "")),
                    start=start,
                    end=end,
                    description=str(component.get("DESCRIPTION", "")),
                    location=str(component.get("LOCATION", "")),
                )
            )
        return entries

    async def entries(self) -> list[CalendarEntry]:
        loop = asyncio.get_running_loop()
        text = await loop.run_in_executor(None, self._download)
        return self.parse(text)


def _as_datetime(value: date | datetime) -> datetime:
    """Aware datetime; all-day dates start at local midnight."""
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if value.tzinfo is None:
        value = value.astimezone()
    return value


class CalendarSource(BaseSource):
    """Sleep sessions read from a calendar feed."""

    name = "calendar"

    def __init__(
        self,
        feed: CalendarFeed | None = None,
        url: str = "",
        summary_marker: str = DEFAULT_SUMMARY_MARKER,
        **config: Any,
    ):
        super().__init__(url=url, summary_marker=summary_marker, **config)
        if feed is None:
            feed = IcsCalendarFeed(url, timeout=config.get("timeout", 30))
        self.feed = feed
        self.summary_marker = summary_marker

    def get_config_schema(self) -> dict[str, Any]:
        return {
            "url": {"type": "string", "required": True, "description": "iCalendar feed URL"},
            "summary_marker": {"type": "string", "default": DEFAULT_SUMMARY_MARKER},
        }

    async def _sleep_entries(self) -> list[CalendarEntry]:
        self.stats["api_calls"] += 1
        try:
            entries = await self.feed.entries()
        except Exception:
            self.stats["errors"] += 1
            raise
        return [e for e in entries if self.summary_marker in e.summary]

    def _to_record(self, entry: CalendarEntry) -> RawSleepRecord | None:
        try:
            return entry_to_record(entry, source=self.name)
        except (ValueError, DataProcessingError) as e:
            self.stats["errors"] += 1
            logger.warning(f"Skipping calendar entry {entry.summary!r} at {entry.start}: {e}")
            return None

    async def fetch_events(self, window_start: datetime, window_end: datetime) -> list[RawSleepRecord]:
        records = []
        for entry in await self._sleep_entries():
            record = self._to_record(entry)
            if record is not None and self._overlaps(record, window_start, window_end):
                records.append(record)
        records.sort(key=lambda r: r.start_time)
        self.stats["records"] += len(records)
        logger.debug(f"Calendar returned {len(records)} sleep sessions for {window_start.date()}..{window_end.date()}")
        return records

    async def latest_record(self) -> RawSleepRecord | None:
        for entry in sorted(await self._sleep_entries(), key=lambda e: e.start, reverse=True):
            record = self._to_record(entry)
            if record is not None:
                return record
        return None
