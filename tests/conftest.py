"""Shared test fixtures for sleepsync."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta, tzinfo

import pytest

from sleepsync.core.clock import Clock
from sleepsync.core.storage import DocumentHandle, LocalDocumentStore, StorageConflictError, StorageKeyError
from sleepsync.core.utils.single_flight import KeyedLock, SingleFlight


class FixedClock(Clock):
    """Deterministic clock: ``sleep`` advances time instead of waiting.

    Every requested delay is recorded in :attr:`sleeps`.
    """

    def __init__(self, now: datetime, tz: tzinfo | None = None):
        if now.tzinfo is None:
            raise ValueError("FixedClock needs an aware datetime")
        super().__init__(tz or now.tzinfo)
        self._now = now
        self._monotonic = 0.0
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self._now.astimezone(self.tz)

    def monotonic(self) -> float:
        return self._monotonic

    def advance(self, seconds: float) -> None:
        self._now = self._now + timedelta(seconds=seconds)
        self._monotonic += seconds

    async def sleep(self, seconds: float) -> None:
        seconds = max(0.0, seconds)
        self.sleeps.append(seconds)
        self.advance(seconds)
        await asyncio.sleep(0)


@pytest.fixture
def make_clock():
    return FixedClock


@pytest.fixture
def clock():
    """Friday 2024-03-15 08:00 UTC; sleeps advance time instead of waiting."""
    return FixedClock(datetime(2024, 3, 15, 8, 0, tzinfo=UTC))


@pytest.fixture
def store(tmp_path):
    return LocalDocumentStore(tmp_path / "vault")


@pytest.fixture
def creations():
    """Private creation table so tests never share in-flight jobs."""
    return SingleFlight("test-creation")


@pytest.fixture
def locks():
    return KeyedLock()


def ts(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> float:
    """Epoch seconds for a UTC wall time."""
    return datetime(year, month, day, hour, minute, tzinfo=UTC).timestamp()


class MemoryStore:
    """In-memory DocumentStore with knobs for failure and template expansion.

    Attributes:
        fail_reads: Number of upcoming reads that raise StorageKeyError.
        fail_modifies: Number of upcoming modifies that raise StorageKeyError.
        expand_after: Reads of a new document that still see its raw body
            before ``{{``/``<%`` markers are stripped (None: never expand).
    """

    def __init__(self, files: dict[str, str] | None = None, expand_after: int | None = 0):
        self.files: dict[str, str] = dict(files or {})
        self.folders: set[str] = set()
        self.fail_reads = 0
        self.fail_modifies = 0
        self.expand_after = expand_after
        self.calls: list[tuple[str, str]] = []
        self._pending: dict[str, int] = {}

    def _handle(self, path: str) -> DocumentHandle:
        return DocumentHandle(path=path, size=len(self.files[path]), modified_at=datetime(2024, 1, 1))

    async def exists(self, path: str) -> bool:
        self.calls.append(("exists", path))
        return path in self.files or path in self.folders

    async def read(self, path: str) -> str:
        self.calls.append(("read", path))
        if self.fail_reads:
            self.fail_reads -= 1
            raise StorageKeyError(f"busy: {path}")
        if path not in self.files:
            raise StorageKeyError(f"Document not found: {path}")
        if path in self._pending:
            if self.expand_after is None or self._pending[path] < self.expand_after:
                self._pending[path] += 1
                return self.files[path]
            del self._pending[path]
            self.files[path] = self.files[path].replace("{{", "").replace("}}", "").replace("<%", "").replace("%>", "")
        return self.files[path]

    async def create(self, path: str, content: str) -> DocumentHandle:
        self.calls.append(("create", path))
        if path in self.files:
            raise StorageConflictError(f"Document already exists: {path}")
        self.files[path] = content
        if "{{" in content or "<%" in content:
            self._pending[path] = 0
        return self._handle(path)

    async def modify(self, path: str, content: str) -> DocumentHandle:
        self.calls.append(("modify", path))
        if self.fail_modifies:
            self.fail_modifies -= 1
            raise StorageKeyError(f"busy: {path}")
        if path not in self.files:
            raise StorageKeyError(f"Document not found: {path}")
        self.files[path] = content
        return self._handle(path)

    async def create_folder(self, path: str) -> None:
        self.calls.append(("create_folder", path))
        if path in self.folders:
            raise StorageConflictError(f"Folder already exists: {path}")
        self.folders.add(path)

    async def get_abstract_file_by_path(self, path: str) -> DocumentHandle | None:
        return self._handle(path) if path in self.files else None

    def count(self, op: str, path: str | None = None) -> int:
        return sum(1 for o, p in self.calls if o == op and (path is None or p == path))


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def make_memory_store():
    return MemoryStore


@pytest.fixture
def epoch():
    return ts
