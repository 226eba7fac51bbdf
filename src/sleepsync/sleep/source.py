"""
SleepSource protocol and base class.

Any sleep data provider (a calendar feed, Google Fit, a wearable export)
implements this interface so the orchestrator can treat them uniformly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from .models import RawSleepRecord


@runtime_checkable
class SleepSource(Protocol):
    """Protocol that every sleep source must satisfy."""

    name: str

    async def fetch_events(self, window_start: datetime, window_end: datetime) -> list[RawSleepRecord]:
        """Return sessions overlapping ``[window_start, window_end]``."""
        ...

    async def latest_record(self) -> RawSleepRecord | None:
        """Return the most recent session, or None."""
        ...

    def get_config_schema(self) -> dict[str, Any]:
        """Describe required config keys so consumers know what to provide."""
        ...


class BaseSource(ABC):
    """Optional ABC providing shared plumbing for sources.

    Subclass this for request stats and window helpers, or just implement
    the ``SleepSource`` protocol directly.
    """

    name: str = "base"

    def __init__(self, **config: Any):
        self.config = config
        self.stats: dict[str, int] = {"api_calls": 0, "records": 0, "errors": 0}

    @abstractmethod
    async def fetch_events(self, window_start: datetime, window_end: datetime) -> list[RawSleepRecord]:
        """Return sessions overlapping the window."""

    async def latest_record(self) -> RawSleepRecord | None:
        return None

    def get_config_schema(self) -> dict[str, Any]:
        """Override to advertise required config keys."""
        return {}

    @staticmethod
    def _overlaps(record: RawSleepRecord, window_start: datetime, window_end: datetime) -> bool:
        return record.end_time >= window_start.timestamp() and record.start_time <= window_end.timestamp()
