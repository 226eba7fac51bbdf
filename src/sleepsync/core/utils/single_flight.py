"""Request coalescing and per-key locks for asyncio code.

:class:`SingleFlight` runs at most one job per key at a time: the first
caller inserts the job, later callers for the same key attach to it, and
the job removes itself from the table when it finishes (success or
failure). :class:`KeyedLock` hands out one FIFO ``asyncio.Lock`` per key.
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from loguru import logger

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Coalesce concurrent calls for the same key into one in-flight job."""

    def __init__(self, name: str = "single-flight"):
        self.name = name
        self._inflight: dict[str, asyncio.Future] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._inflight

    def __len__(self) -> int:
        return len(self._inflight)

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        """Return the result of the job for *key*, starting it if nobody has.

        Callers resume in the order they called ``run``. Cancelling one
        caller does not cancel the shared job.
        """
        job = self._inflight.get(key)
        if job is None:
            job = asyncio.ensure_future(factory())
            self._inflight[key] = job
            job.add_done_callback(lambda fut, key=key: self._release(key, fut))
        else:
            logger.debug(f"{self.name}: joining in-flight job for {key}")
        return await asyncio.shield(job)

    def _release(self, key: str, job: asyncio.Future) -> None:
        if self._inflight.get(key) is job:
            del self._inflight[key]
        if not job.cancelled() and job.exception() is not None:
            logger.debug(f"{self.name}: job for {key} failed: {job.exception()}")


class KeyedLock:
    """One ``asyncio.Lock`` per key, dropped once nobody holds a reference."""

    def __init__(self):
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def for_key(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def locked(self, key: str) -> bool:
        lock: Any = self._locks.get(key)
        return bool(lock and lock.locked())
