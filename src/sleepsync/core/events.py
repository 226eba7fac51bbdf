"""Notifications from the sync engine.

The writers and the orchestrator publish named events (a sync started, a
document was created, a sync failed) on an :class:`EventBus`; the CLI and
the scheduler subscribe to the ones they care about. Publishers never know
who is listening, and a failing listener never breaks a sync.

Usage::

    from sleepsync.core.events import EventBus, SYNC_COMPLETED

    bus = EventBus()
    bus.on(SYNC_COMPLETED, lambda event: print(event.payload["appended"]))
    await bus.publish(SYNC_COMPLETED, source="sync", appended=4)
"""

from __future__ import annotations

import inspect
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from time import time
from typing import Any

from loguru import logger

SYNC_STARTED = "sync.started"
SYNC_PROGRESS = "sync.progress"
SYNC_COMPLETED = "sync.completed"
SYNC_CANCELLED = "sync.cancelled"
SYNC_FAILED = "sync.failed"
DOCUMENT_CREATED = "document.created"
DOCUMENT_UPDATED = "document.updated"
AUTH_COMPLETED = "auth.completed"

Hook = Callable[["Event"], None] | Callable[["Event"], Awaitable[None]]


@dataclass(frozen=True)
class Event:
    """One published notification."""

    name: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time)
    source: str = ""

    @property
    def topic(self) -> str:
        """``sync`` for ``sync.completed``."""
        return self.name.split(".", 1)[0]


class EventBus:
    """Publish/subscribe with sync and async hooks, run in registration order."""

    def __init__(self) -> None:
        self._hooks: dict[str, list[Hook]] = defaultdict(list)
        self._wildcard_hooks: list[Hook] = []

    def on(self, event_name: str, hook: Hook) -> None:
        self._hooks[event_name].append(hook)

    def on_all(self, hook: Hook) -> None:
        """Receive every event, after the hooks registered for its name."""
        self._wildcard_hooks.append(hook)

    def off(self, event_name: str, hook: Hook) -> None:
        """Remove *hook*; removing one that is not registered does nothing."""
        hooks = self._hooks.get(event_name, [])
        if hook in hooks:
            hooks.remove(hook)

    def _hooks_for(self, name: str) -> list[Hook]:
        return [*self._hooks.get(name, []), *self._wildcard_hooks]

    async def emit(self, event: Event) -> None:
        for hook in self._hooks_for(event.name):
            try:
                result = hook(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.warning(f"Event hook failed for {event.name}: {exc}")

    async def publish(self, name: str, source: str = "", **payload: Any) -> None:
        """Build an :class:`Event` from keyword arguments and emit it."""
        await self.emit(Event(name=name, payload=payload, source=source))
