"""Note templates and entry templates.

Two small template languages live here:

* **Note templates** fill the body of a newly created document:
  ``{{date}}``, ``{{date:FMT}}``, ``{{tdate}}``, ``{{tdate:FMT}}`` and
  ``{{title}}``. Anything else in ``{{ }}`` or ``<% %>`` is left for the
  editor's own templating to expand.
* **Entry templates** render one event as one line: ``<time>``
  (``11:05 PM``), ``<mtime>`` (``23:05``), ``<duration>``, ``<date>`` and
  ``<user>``, optionally behind a task prefix such as ``- [s] ``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime

from loguru import logger

from sleepsync.core.clock import Clock
from sleepsync.core.dates import LONG_DATE_FORMAT, TITLE_FORMAT, format_date, format_time_12

from ..sleep.models import SleepEvent

PLACEHOLDER_MARKERS = ("{{", "<%")
DEFAULT_TITLE_FORMAT = "YYYY-MM-DD_ddd"

_DATE_FMT_RE = re.compile(r"\{\{date:([^}]+)\}\}")
_TDATE_FMT_RE = re.compile(r"\{\{tdate:([^}]+)\}\}")
_ENTRY_TOKEN_RE = re.compile(r"(<mtime>|<time>|<duration>|<date>|<user>)")

_MTIME_PATTERN = r"\d{1,2}:\d{2}"
_TIME_PATTERN = r"\d{1,2}:\d{2} ?[AaPp][Mm]"
_DATE_PATTERN = r"\d{4}-\d{2}-\d{2}"


def has_placeholders(text: str) -> bool:
    """True while unexpanded template markers remain."""
    return any(marker in text for marker in PLACEHOLDER_MARKERS)


def default_body(day: date) -> str:
    return f"# {format_date(day, TITLE_FORMAT)}\n\n"


def render_note_template(text: str, day: date, clock: Clock, title: str | None = None) -> str:
    """Expand the date variables of a note template for *day*."""
    target = clock.local_noon(day)
    today = clock.local_noon(clock.today())

    content = _DATE_FMT_RE.sub(lambda m: format_date(target, m.group(1)), text)
    content = _TDATE_FMT_RE.sub(lambda m: format_date(today, m.group(1)), content)
    return (
        content.replace("{{title}}", title if title is not None else format_date(target, DEFAULT_TITLE_FORMAT))
        .replace("{{date}}", format_date(target, LONG_DATE_FORMAT))
        .replace("{{tdate}}", format_date(today, LONG_DATE_FORMAT))
    )


def entry_prefix(letter: str) -> str:
    return f"- [{letter}] " if letter else ""


def to_12_hour(hhmm: str) -> str:
    return format_time_12(datetime.strptime(hhmm, "%H:%M"))


def to_24_hour(text: str) -> str:
    """``"11:05 PM"`` or ``"23:05"`` -> ``"23:05"``."""
    text = text.strip().upper().replace(" ", "")
    if text.endswith(("AM", "PM")):
        return datetime.strptime(text, "%I:%M%p").strftime("%H:%M")
    return datetime.strptime(text, "%H:%M").strftime("%H:%M")


@dataclass(frozen=True)
class EntryMark:
    """A time parsed back out of an existing entry line."""

    date: str | None
    time: str


class EntryFormat:
    """Render, recognise and parse lines made from one entry template."""

    def __init__(self, template: str, prefix_letter: str = ""):
        self.template = template
        self.prefix = entry_prefix(prefix_letter)
        self._parser = re.compile(self._pattern(None), re.IGNORECASE)

    def render(self, event: SleepEvent, user_name: str = "") -> str:
        if event.is_wake and event.duration_hours is None and "<duration>" in self.template:
            logger.warning(f"No duration known for wake at {event.date} {event.time}; leaving it blank")
        values = self._values(event, user_name)
        body = _ENTRY_TOKEN_RE.sub(lambda m: values[m.group(1)], self.template)
        return self.prefix + body

    def matches(self, line: str, event: SleepEvent, user_name: str = "") -> bool:
        """True when *line* is this event's entry, whatever duration it records."""
        return re.fullmatch(self._pattern(event, user_name), line.strip()) is not None

    def contains(self, content: str, event: SleepEvent, user_name: str = "") -> bool:
        rendered = self.render(event, user_name).strip()
        pattern = re.compile(self._pattern(event, user_name))
        return any(
            line.strip() == rendered or pattern.fullmatch(line.strip())
            for line in content.splitlines()
        )

    def parse(self, line: str) -> EntryMark | None:
        """Recover the date (when templated) and 24-hour time of an entry line."""
        match = self._parser.fullmatch(line.strip())
        if match is None:
            return None
        groups = match.groupdict()
        if groups.get("mtime"):
            time_text = to_24_hour(groups["mtime"])
        elif groups.get("time"):
            time_text = to_24_hour(groups["time"])
        else:
            return None
        return EntryMark(date=groups.get("date"), time=time_text)

    def marks(self, content: str) -> list[EntryMark]:
        found = []
        for line in content.splitlines():
            mark = self.parse(line)
            if mark is not None:
                found.append(mark)
        return found

    @staticmethod
    def _values(event: SleepEvent, user_name: str) -> dict[str, str]:
        return {
            "<mtime>": event.time,
            "<time>": to_12_hour(event.time),
            "<duration>": f"{event.duration_hours:.1f}" if event.duration_hours is not None else "",
            "<date>": event.date,
            "<user>": user_name,
        }

    def _pattern(self, event: SleepEvent | None, user_name: str = "") -> str:
        """Regex for a whole (stripped) entry line.

        With an event, times and the date must equal the event's; without
        one they become named capture groups.
        """
        values = self._values(event, user_name) if event is not None else None
        captures = {"<mtime>": _MTIME_PATTERN, "<time>": _TIME_PATTERN, "<date>": _DATE_PATTERN}
        seen: set[str] = set()
        parts = []
        for piece in _ENTRY_TOKEN_RE.split((self.prefix + self.template).strip()):
            if piece in ("<duration>", "<user>"):
                parts.append(".*?")
            elif piece in captures:
                name = piece.strip("<>")
                if values is not None:
                    parts.append(re.escape(values[piece]))
                elif name in seen:
                    parts.append(f"(?P={name})")
                else:
                    seen.add(name)
                    parts.append(f"(?P<{name}>{captures[piece]})")
            else:
                parts.append(re.escape(piece))
        return "".join(parts)
