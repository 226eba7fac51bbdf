"""Detailed note for a single night.

Writes ``<folder>/YYYY/YYYY-MM/YYYY-MM-DD_Sleep.md`` with YAML frontmatter
(times, duration, deep-sleep share, cycles, efficiency, noise) and a
readable summary of the stages, graph and comment. An existing note is
never overwritten.
"""

from __future__ import annotations

from datetime import datetime

import yaml
from loguru import logger

from sleepsync.core.clock import Clock
from sleepsync.core.dates import format_date, format_time_24
from sleepsync.core.storage import DocumentStore, StorageConflictError

from ..sleep.models import RawSleepRecord
from .resolver import join_path

NOT_AVAILABLE = "N/A"


def split_hours(hours: float) -> tuple[int, int]:
    """``7.51 -> (7, 31)``, carrying a rounded-up 60 minutes into the hour."""
    total_minutes = round(hours * 60)
    return divmod(total_minutes, 60)


def _fmt1(value: float | None) -> str:
    return f"{value:.1f}" if value is not None else NOT_AVAILABLE


def session_note_path(record: RawSleepRecord, clock: Clock, folder: str = "Sleep") -> str:
    start = clock.from_timestamp(record.start_time)
    return join_path(
        folder,
        format_date(start, "YYYY"),
        format_date(start, "YYYY-MM"),
        f"{format_date(start, 'YYYY-MM-DD')}_Sleep.md",
    )


def _frontmatter(record: RawSleepRecord, start: datetime, end: datetime, now: datetime) -> str:
    hours = record.sleep_duration_hours if record.sleep_duration_hours is not None else record.span_hours
    h, m = split_hours(hours)
    data = {
        "type": "sleep",
        "title": f"Sleep Record {format_date(start, 'YYYY-MM-DD')}",
        "date": format_date(start, "YYYY-MM-DD"),
        "sleepStartTime": format_time_24(start),
        "sleepEndTime": format_time_24(end),
        "sleepDuration": f"{h}:{m:02d}",
        "sleepLocation": record.location or NOT_AVAILABLE,
        "sleepDeepPercent": _fmt1(record.deep_sleep_percent),
        "sleepCycles": record.cycles if record.cycles else NOT_AVAILABLE,
        "sleepEfficiency": _fmt1(record.efficiency * 100 if record.efficiency is not None else None),
        "sleepNoiseLevel": _fmt1(record.noise_percent),
        "created": now.isoformat(timespec="seconds"),
    }
    return "---\n" + yaml.safe_dump(data, sort_keys=False, allow_unicode=True) + "---\n"


def _stage_lines(record: RawSleepRecord) -> list[str]:
    minutes = {name: round(hours * 60) for name, hours in record.stage_hours.items() if hours}
    total = sum(minutes.values())
    if not total:
        return ["No detailed sleep stage data available."]

    labels = (("deep", "🌑 Deep Sleep: "), ("light", "🌓 Light Sleep:"), ("rem", "🌙 REM Sleep:  "))
    lines = ["**Sleep Stages:**"]
    for name, label in labels:
        if name in minutes:
            lines.append(f"{label} {minutes[name] / total * 100:.1f}% ({minutes[name]}m)")
    return lines


def render_session_note(record: RawSleepRecord, clock: Clock) -> str:
    start = clock.from_timestamp(record.start_time)
    end = clock.from_timestamp(record.end_time)
    day = format_date(start, "YYYY-MM-DD")
    h, m = split_hours(record.sleep_duration_hours if record.sleep_duration_hours is not None else record.span_hours)

    lines = [
        f"# Sleep Record for {day}",
        "",
        "## Sleep Times",
        f"▶️ Went to bed at {format_time_24(start)} on {format_date(start, 'dddd, MMMM D')}",
        f"⏰ Woke up at {format_time_24(end)} on {format_date(end, 'dddd, MMMM D')}",
        f"⏱️ Total time in bed: {h}h {m}m",
        "",
        "## Sleep Analysis",
        "",
        *_stage_lines(record),
        "",
        "**Sleep Quality:**",
    ]
    if record.efficiency is not None:
        lines.append(f"📊 Sleep Efficiency: {record.efficiency * 100:.1f}%")
    if record.sleep_quality is not None:
        lines.append(f"⭐ Sleep Quality: {record.sleep_quality:.1f}")
    if record.cycles:
        lines.append(f"🔄 Sleep Cycles: {record.cycles}")
    if record.noise_percent is not None:
        lines.append(f"🔊 Noise Level: {record.noise_percent:.1f}%")
    if record.snoring:
        lines.append(f"😴 Snoring: {record.snoring}")
    if record.location:
        lines.append(f"📍 Location: {record.location}")
    if record.graph:
        lines += ["", "## Sleep Graph", "```", record.graph, "```"]
    if record.comment:
        lines += ["", "## Notes", record.comment]

    return _frontmatter(record, start, end, clock.now()) + "\n".join(lines) + "\n"


class SessionNoteWriter:
    """Create the detailed note for one night."""

    def __init__(self, store: DocumentStore, clock: Clock, folder: str = "Sleep"):
        self.store = store
        self.clock = clock
        self.folder = folder

    async def create(self, record: RawSleepRecord) -> tuple[str, bool]:
        """Return ``(path, created)``; ``created`` is False when the note already existed."""
        path = session_note_path(record, self.clock, self.folder)
        if await self.store.exists(path):
            logger.info(f"Sleep note {path} already exists, leaving it untouched")
            return path, False

        parts = path.split("/")[:-1]
        for i in range(1, len(parts) + 1):
            folder = "/".join(parts[:i])
            if not await self.store.exists(folder):
                try:
                    await self.store.create_folder(folder)
                except StorageConflictError:
                    pass

        try:
            await self.store.create(path, render_session_note(record, self.clock))
        except StorageConflictError:
            return path, False
        logger.info(f"Created sleep note {path}")
        return path, True
