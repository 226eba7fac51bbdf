"""Per-measurement history tables with a chart.

Each tracked measurement (``Total Sleep``, ``Deep Sleep``, ``Sleep Quality``)
gets one markdown file holding a table of ``| date | user | value unit |``
rows followed by a mermaid ``xychart-beta`` chart that is regenerated on
every update. A date already recorded for the same user is left alone.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass

from loguru import logger

from sleepsync.core.events import DOCUMENT_CREATED, DOCUMENT_UPDATED, EventBus
from sleepsync.core.storage import DocumentStore, StorageConflictError
from sleepsync.core.utils.single_flight import KeyedLock

from .config import MeasurementConfig, MeasurementSpec
from .resolver import join_path, with_markdown_suffix
from .writer import PATH_LOCKS

_MERMAID_RE = re.compile(r"```mermaid.*?```", re.DOTALL)
_DATE_CELL_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")


@dataclass(frozen=True)
class MeasurementRow:
    date: str
    user: str
    value: str


def format_value(value: float) -> str:
    return f"{value:.1f}"


def default_header(spec: MeasurementSpec) -> str:
    return f"# {spec.name} History\n\n| Date | User | Value |\n|------|------|-------|\n"


def parse_rows(content: str, unit: str) -> list[MeasurementRow]:
    rows = []
    for line in content.splitlines():
        line = line.strip()
        if not line.startswith("|") or unit not in line:
            continue
        cells = [cell.strip() for cell in line.strip("|").split("|")]
        if len(cells) < 3 or not _DATE_CELL_RE.match(cells[0]):
            continue
        rows.append(MeasurementRow(date=cells[0], user=cells[1], value=cells[2].replace(unit, "").strip()))
    return rows


def render_chart(spec: MeasurementSpec, rows: list[MeasurementRow]) -> str:
    if spec.kind == "quality":
        title, axis = "Sleep Quality Over Time", "Quality (%)"
    else:
        title, axis = f"{spec.name} Over Time", "Hours"
    ordered = sorted(rows, key=lambda r: r.date)
    dates = ", ".join(f'"{r.date}"' for r in ordered)
    values = ", ".join(r.value for r in ordered)
    return (
        "```mermaid\n"
        "xychart-beta\n"
        f'    title "{title}"\n'
        f"    x-axis [{dates}]\n"
        f'    y-axis "{axis}"\n'
        f"    line [{values}]\n"
        "```"
    )


class MeasurementWriter:
    """Keep the measurement files of a vault up to date."""

    def __init__(
        self,
        store: DocumentStore,
        config: MeasurementConfig,
        *,
        user_names: Mapping[str, str] | None = None,
        events: EventBus | None = None,
        locks: KeyedLock | None = None,
    ):
        self.store = store
        self.config = config
        self.user_names = dict(user_names or {})
        self.events = events
        self._locks = locks if locks is not None else PATH_LOCKS

    def path_for(self, spec: MeasurementSpec, user: str) -> str:
        name = self.config.name_format.replace("<measure>", spec.name).replace("<user>", user)
        return join_path(self.config.folder, with_markdown_suffix(name))

    def render_row(self, spec: MeasurementSpec, day: str, user: str, value: float) -> str:
        return (
            self.config.entry.replace("<date>", day)
            .replace("<user>", user)
            .replace("<measure>", format_value(value))
            .replace("<unit>", spec.unit)
        )

    async def record(self, day: str, user_id: str, values: Mapping[str, float]) -> list[str]:
        """Add one row per tracked measurement present in *values*; return changed paths."""
        if not self.config.enabled:
            return []
        user = self.user_names.get(user_id) or "Unknown"
        changed = []
        for spec in self.config.track:
            value = values.get(spec.name)
            if value is None:
                continue
            path = self.path_for(spec, user)
            async with self._locks.for_key(path):
                if await self._update(path, spec, day, user, value):
                    changed.append(path)
        return changed

    async def _initial_content(self, spec: MeasurementSpec) -> str:
        if self.config.template and await self.store.get_abstract_file_by_path(self.config.template):
            text = await self.store.read(self.config.template)
            return text.replace("<measurementName>", spec.name).replace("<measurementType>", spec.kind).replace(
                "<unit>", spec.unit
            )
        return default_header(spec)

    async def _update(self, path: str, spec: MeasurementSpec, day: str, user: str, value: float) -> bool:
        existed = await self.store.exists(path)
        content = await self.store.read(path) if existed else await self._initial_content(spec)

        rows = parse_rows(content, spec.unit)
        if any(r.date == day and r.user == user for r in rows):
            logger.debug(f"{path}: {day} already recorded for {user}")
            return False

        rows.append(MeasurementRow(day, user, format_value(value)))
        table = _MERMAID_RE.sub("", content).rstrip()
        new_content = f"{table}\n{self.render_row(spec, day, user, value)}\n\n{render_chart(spec, rows)}\n"

        if existed:
            await self.store.modify(path, new_content)
            logger.info(f"Updated measurement file {path}")
            name = DOCUMENT_UPDATED
        else:
            if self.config.folder and not await self.store.exists(self.config.folder):
                try:
                    await self.store.create_folder(self.config.folder)
                except StorageConflictError:
                    pass
            await self.store.create(path, new_content)
            logger.info(f"Created measurement file {path}")
            name = DOCUMENT_CREATED
        if self.events is not None:
            await self.events.publish(name, source="measurements", path=path, category="measurements")
        return True
