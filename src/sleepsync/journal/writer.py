"""Materialize sleep events into markdown documents, exactly once.

For each ``(event, category)`` the writer walks a small state machine::

    IDLE -> RESOLVING -> [CREATING -> AWAITING_TEMPLATE_SETTLE] -> READING -> APPENDING -> DONE
                                                                          \\-> FAILED (from any step)

Finding or creating the document for a path is coalesced process-wide:
concurrent writers for the same new document share one creation job. After
that, the read-modify-write of a path is serialized by a per-path lock, so
appends land in call order and none is lost.

Appending is idempotent: an entry is skipped when a line for the same
event (prefix, kind, time, and date where templated) is already there, or
when the exact rendered entry is present.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import timedelta
from enum import StrEnum

from loguru import logger

from sleepsync.core.clock import Clock
from sleepsync.core.dates import parse_iso_date
from sleepsync.core.events import DOCUMENT_CREATED, DOCUMENT_UPDATED, EventBus
from sleepsync.core.exceptions import (
    MaterializationError,
    SleepSyncError,
    StorageContentionError,
    TemplateNotSettledError,
)
from sleepsync.core.retry import SETTLE_POLICY, STORAGE_POLICY, RetryPolicy, retry_async
from sleepsync.core.storage import DocumentStore, StorageConflictError, StorageError, StorageKeyError
from sleepsync.core.utils.single_flight import KeyedLock, SingleFlight

from ..sleep.models import SleepEvent
from ..sleep.normalizer import compute_duration_hours
from .config import CategoryConfig
from .resolver import DocumentResolver
from .templates import EntryFormat, default_body, has_placeholders, render_note_template


class WriteState(StrEnum):
    IDLE = "idle"
    RESOLVING = "resolving"
    CREATING = "creating"
    AWAITING_TEMPLATE_SETTLE = "awaiting_template_settle"
    READING = "reading"
    APPENDING = "appending"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class DocumentTarget:
    """The document for one date and category, and whether it was there before."""

    path: str
    already_existed: bool


@dataclass(frozen=True)
class WriteResult:
    path: str
    category: str
    entry: str
    appended: bool
    created: bool
    duration_hours: float | None = None
    states: tuple[WriteState, ...] = ()


@dataclass
class _StateTrace:
    path: str | None = None
    states: list[WriteState] = field(default_factory=lambda: [WriteState.IDLE])

    @property
    def current(self) -> WriteState:
        return self.states[-1]

    def enter(self, state: WriteState) -> None:
        self.states.append(state)
        logger.debug(f"write {self.path or '?'}: {state.value}")


# One table and one set of locks per process.
CREATION_JOBS: SingleFlight[DocumentTarget] = SingleFlight("document-creation")
PATH_LOCKS = KeyedLock()


def append_line(content: str, entry: str) -> str:
    if content and not content.endswith("\n"):
        content += "\n"
    return f"{content}{entry}\n"


class MaterializationWriter:
    """Append rendered events to the documents of a :class:`DocumentStore`.

    Args:
        store: Where documents live.
        clock: Time source for paths, templates and backoff sleeps.
        user_names: ``user_id -> display name`` for ``<user>``.
        events: Optional bus for ``document.created`` / ``document.updated``.
        settle_policy: Polling schedule while a new document's template expands.
        storage_policy: Retry schedule for reads and writes.
    """

    def __init__(
        self,
        store: DocumentStore,
        clock: Clock,
        *,
        resolver: DocumentResolver | None = None,
        user_names: Mapping[str, str] | None = None,
        events: EventBus | None = None,
        settle_policy: RetryPolicy = SETTLE_POLICY,
        storage_policy: RetryPolicy = STORAGE_POLICY,
        creations: SingleFlight[DocumentTarget] | None = None,
        locks: KeyedLock | None = None,
    ):
        self.store = store
        self.clock = clock
        self.resolver = resolver or DocumentResolver(clock)
        self.user_names = dict(user_names or {})
        self.events = events
        self.settle_policy = settle_policy
        self.storage_policy = storage_policy
        self._creations = creations if creations is not None else CREATION_JOBS
        self._locks = locks if locks is not None else PATH_LOCKS

    def user_name(self, user_id: str) -> str:
        return self.user_names.get(user_id) or user_id

    async def write(self, event: SleepEvent, category: CategoryConfig) -> WriteResult:
        """Ensure *event* appears exactly once in its document for *category*."""
        trace = _StateTrace()
        try:
            trace.enter(WriteState.RESOLVING)
            path = self.resolver.resolve(event.date, category)
            trace.path = path

            target = await self._creations.run(path, lambda: self._ensure_document(path, event.date, category, trace))

            async with self._locks.for_key(path):
                result = await self._append(event, category, target, trace)
            trace.enter(WriteState.DONE)
            return replace(result, states=tuple(trace.states))
        except MaterializationError:
            trace.enter(WriteState.FAILED)
            raise
        except (StorageError, SleepSyncError) as e:
            failed_in = trace.current
            trace.enter(WriteState.FAILED)
            raise MaterializationError(
                f"Failed to write {event.kind.value} event for {event.date} in {failed_in.value}: {e}",
                state=failed_in,
                path=trace.path,
            ) from e

    # ── resolve / create / settle ────────────────────────────────────

    async def _ensure_document(self, path: str, day: str, category: CategoryConfig, trace: _StateTrace) -> DocumentTarget:
        if await self.store.exists(path):
            return DocumentTarget(path, already_existed=True)

        trace.enter(WriteState.CREATING)
        body = await self._initial_body(day, category)
        await self._ensure_folders(path)
        try:
            await self.store.create(path, body)
        except StorageConflictError:
            logger.debug(f"{path} appeared while creating it; using the existing document")
            return DocumentTarget(path, already_existed=True)
        except StorageError as e:
            raise MaterializationError(f"Could not create {path}: {e}", state=WriteState.CREATING, path=path) from e

        logger.info(f"Created {path}")
        if self.events is not None:
            await self.events.publish(DOCUMENT_CREATED, source="writer", path=path, category=category.name)

        trace.enter(WriteState.AWAITING_TEMPLATE_SETTLE)
        outcome = await retry_async(
            lambda: self.store.read(path),
            self.settle_policy,
            self.clock,
            accept=lambda text: not has_placeholders(text),
            retry_on=(StorageError,),
            label=f"settle {path}",
        )
        if outcome.exhausted:
            raise TemplateNotSettledError(
                f"Template placeholders in {path} did not expand after {outcome.attempts} checks",
                state=WriteState.AWAITING_TEMPLATE_SETTLE,
                path=path,
            )
        return DocumentTarget(path, already_existed=False)

    async def _initial_body(self, day: str, category: CategoryConfig) -> str:
        date_value = parse_iso_date(day)
        if not category.template:
            return default_body(date_value)
        try:
            if await self.store.get_abstract_file_by_path(category.template) is None:
                raise StorageKeyError(f"Template not found: {category.template}")
            text = await self.store.read(category.template)
        except StorageError as e:
            logger.warning(f"Could not read template {category.template}, using a plain title: {e}")
            return default_body(date_value)
        return render_note_template(text, date_value, self.clock, title=self.resolver.title(day, category))

    async def _ensure_folders(self, path: str) -> None:
        """Create each missing parent folder; "already exists" races are fine."""
        parts = path.split("/")[:-1]
        for i in range(1, len(parts) + 1):
            folder = "/".join(parts[:i])
            if await self.store.exists(folder):
                continue
            try:
                await self.store.create_folder(folder)
            except StorageConflictError:
                pass

    # ── read / append ────────────────────────────────────────────────

    async def _read(self, path: str, state: WriteState = WriteState.READING) -> str:
        outcome = await retry_async(
            lambda: self.store.read(path),
            self.storage_policy,
            self.clock,
            retry_on=(StorageError,),
            label=f"read {path}",
        )
        if outcome.exhausted:
            raise StorageContentionError(
                f"Could not read {path} after {outcome.attempts} attempts: {outcome.last_error}",
                state=state,
                path=path,
            )
        return outcome.value

    async def _modify(self, path: str, content: str) -> None:
        outcome = await retry_async(
            lambda: self.store.modify(path, content),
            self.storage_policy,
            self.clock,
            retry_on=(StorageError,),
            label=f"write {path}",
        )
        if outcome.exhausted:
            raise StorageContentionError(
                f"Could not write {path} after {outcome.attempts} attempts: {outcome.last_error}",
                state=WriteState.APPENDING,
                path=path,
            )

    async def _append(
        self, event: SleepEvent, category: CategoryConfig, target: DocumentTarget, trace: _StateTrace
    ) -> WriteResult:
        trace.enter(WriteState.READING)
        content = await self._read(target.path)

        if event.is_wake and event.duration_hours is None:
            event = event.with_duration(await self.backfill_duration(event, category, target.path, content))

        user = self.user_name(event.user_id)
        fmt = EntryFormat(category.entry_template(event.kind.value), category.prefix_letter)
        entry = fmt.render(event, user)

        trace.enter(WriteState.APPENDING)
        appended = False
        if fmt.contains(content, event, user):
            logger.debug(f"{target.path}: {event.kind.value} at {event.date} {event.time} already recorded")
        else:
            await self._modify(target.path, append_line(content, entry))
            appended = True
            logger.info(f"Added {event.kind.value} {event.date} {event.time} to {target.path}")
            if self.events is not None:
                await self.events.publish(
                    DOCUMENT_UPDATED, source="writer", path=target.path, category=category.name, entry=entry
                )

        return WriteResult(
            path=target.path,
            category=category.name,
            entry=entry,
            appended=appended,
            created=not target.already_existed,
            duration_hours=event.duration_hours,
            states=tuple(trace.states),
        )

    # ── duration back-fill ───────────────────────────────────────────

    async def backfill_duration(
        self, event: SleepEvent, category: CategoryConfig, path: str, content: str
    ) -> float | None:
        """Hours since the latest recorded sleep at or before this wake.

        Looks in the wake's document and in the previous day's document
        (one document for a running log).
        """
        previous_day = (parse_iso_date(event.date) - timedelta(days=1)).isoformat()
        sleep_format = EntryFormat(category.sleep_entry, category.prefix_letter)

        marks = [(m.date or event.date, m.time) for m in sleep_format.marks(content)]

        previous_path = self.resolver.resolve(previous_day, category)
        if previous_path != path and await self.store.exists(previous_path):
            previous = await self._read(previous_path)
            marks.extend((m.date or previous_day, m.time) for m in sleep_format.marks(previous))

        wake_key = (event.date, event.time)
        eligible = [m for m in marks if previous_day <= m[0] and m <= wake_key]
        if not eligible:
            logger.warning(f"No sleep entry found before wake at {event.date} {event.time}")
            return None

        _, sleep_time = max(eligible)
        duration = compute_duration_hours(sleep_time, event.time)
        logger.debug(f"Back-filled duration {duration}h from sleep at {sleep_time}")
        return duration
