"""Periodic auto-sync via APScheduler.

Wraps APScheduler's ``AsyncIOScheduler`` with a single interval job that
runs a sync. APScheduler is imported lazily (only in :meth:`start`) so the
module can be imported without the ``scheduler`` extra installed.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from sleepsync.core.exceptions import SleepSyncError

SyncFn = Callable[[], Awaitable[Any]]
"""Async callable running one sync, typically ``orchestrator.sync``."""

JOB_ID = "sleepsync_auto_sync"


class SyncScheduler:
    """Run a sync every ``interval_minutes``.

    Args:
        sync_fn: Async callable to run on each tick.
        interval_minutes: Minutes between runs.
        run_immediately: Also run once right after :meth:`start`.
    """

    def __init__(self, sync_fn: SyncFn, interval_minutes: int = 60, run_immediately: bool = False):
        if interval_minutes < 1:
            raise ValueError("interval_minutes must be at least 1")
        self._sync_fn = sync_fn
        self.interval_minutes = interval_minutes
        self.run_immediately = run_immediately
        self._scheduler: Any = None  # AsyncIOScheduler, lazily created
        self._running = False
        self.runs = 0
        self.last_result: Any = None
        self.last_error: BaseException | None = None

    @classmethod
    def from_config(cls, sync_fn: SyncFn, config: Any, **kwargs: Any) -> SyncScheduler:
        """Read ``sync.auto_sync_minutes`` from a Config object."""
        return cls(sync_fn, interval_minutes=int(config.get("sync.auto_sync_minutes", 60)), **kwargs)

    def start(self) -> None:
        """Create the APScheduler instance, add the sync job, and start.

        Must be called from a running asyncio event loop.
        """
        try:
            from apscheduler.schedulers.asyncio import AsyncIOScheduler
            from apscheduler.triggers.interval import IntervalTrigger
        except ImportError:
            raise ImportError("Install with: pip install sleepsync[scheduler]")

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        if self.run_immediately:
            self._scheduler.add_job(self.run_once, id=f"{JOB_ID}_initial", replace_existing=True)
        self._scheduler.start()
        logger.info(f"Auto-sync every {self.interval_minutes} minute(s)")

    def shutdown(self) -> None:
        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Auto-sync stopped")

    @property
    def running(self) -> bool:
        return self._running

    async def run_once(self) -> Any:
        """Run one sync unless one is still in progress; sync errors are logged, not raised."""
        if self._running:
            logger.debug("Previous auto-sync still running, skipping this tick")
            return None
        self._running = True
        try:
            self.last_result = await self._sync_fn()
            self.last_error = None
        except SleepSyncError as e:
            self.last_error = e
            logger.error(f"Auto-sync failed: {e}")
            return None
        finally:
            self._running = False
            self.runs += 1
        return self.last_result
