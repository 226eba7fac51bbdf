"""Sync orchestration and scheduling."""

from .orchestrator import (
    CancellationToken,
    Destinations,
    SyncOrchestrator,
    SyncReport,
    SyncRequest,
    SyncStatus,
)
from .scheduler import SyncScheduler

__all__ = [
    "CancellationToken",
    "Destinations",
    "SyncOrchestrator",
    "SyncReport",
    "SyncRequest",
    "SyncScheduler",
    "SyncStatus",
]
