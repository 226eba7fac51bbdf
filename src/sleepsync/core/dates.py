"""Date-token formatting for paths, titles and note templates.

Supports the moment.js-style tokens used in vault configuration
(``YYYY-MM-DD_ddd``, ``YYYY/YYYY-MM``, ``dddd, MMMM D, YYYY``).
Text inside square brackets is copied verbatim, so folder names that
contain token letters can be written as ``[Daily]/YYYY``.

Names are English regardless of the process locale.
"""

from __future__ import annotations

import re
from datetime import date, datetime

MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)
DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

_TOKEN_RE = re.compile(r"\[([^\]]*)\]|YYYY|YY|MMMM|MMM|MM|M|DDDD|DDD|DD|D|dddd|ddd")

TITLE_FORMAT = "dddd, MMMM D, YYYY"
LONG_DATE_FORMAT = "MMMM D, YYYY"
ISO_DATE_FORMAT = "YYYY-MM-DD"


def _token_value(token: str, d: date) -> str:
    if token == "YYYY":
        return f"{d.year:04d}"
    if token == "YY":
        return f"{d.year % 100:02d}"
    if token == "MMMM":
        return MONTH_NAMES[d.month - 1]
    if token == "MMM":
        return MONTH_NAMES[d.month - 1][:3]
    if token == "MM":
        return f"{d.month:02d}"
    if token == "M":
        return str(d.month)
    if token in ("DDDD", "dddd"):
        return DAY_NAMES[d.weekday()]
    if token in ("DDD", "ddd"):
        return DAY_NAMES[d.weekday()][:3]
    if token == "DD":
        return f"{d.day:02d}"
    # "D"
    return str(d.day)


def format_date(value: date | datetime, pattern: str) -> str:
    """Format *value* with a token pattern such as ``YYYY-MM-DD_ddd``."""
    d = value.date() if isinstance(value, datetime) else value

    def _sub(match: re.Match) -> str:
        literal = match.group(1)
        if literal is not None:
            return literal
        return _token_value(match.group(0), d)

    return _TOKEN_RE.sub(_sub, pattern)


def parse_iso_date(value: str | date) -> date:
    """Parse ``YYYY-MM-DD`` (or pass a date through)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(value.strip(), "%Y-%m-%d").date()


def format_time_24(value: datetime) -> str:
    """``23:05`` style."""
    return value.strftime("%H:%M")


def format_time_12(value: datetime) -> str:
    """``11:05 PM`` style, without a leading zero on the hour."""
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {suffix}"
