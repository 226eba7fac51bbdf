"""Sleep data: sources, canonical events, normalization and merging."""

from .merger import ProgressTracker, merge_events
from .models import DateWindow, EventKind, MergedEventSequence, RawSleepRecord, SleepEvent
from .normalizer import EventNormalizer, compute_duration_hours, round_half_up
from .source import BaseSource, SleepSource

__all__ = [
    "BaseSource",
    "DateWindow",
    "EventKind",
    "EventNormalizer",
    "MergedEventSequence",
    "ProgressTracker",
    "RawSleepRecord",
    "SleepEvent",
    "SleepSource",
    "compute_duration_hours",
    "merge_events",
    "round_half_up",
]
