"""
Document store interface.

The writer talks to the vault only through :class:`DocumentStore`, so the
same code runs against a local directory, a test double, or any other
backend that can hold markdown files addressed by vault-relative paths.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable

from sleepsync.core.exceptions import SleepSyncError


@dataclass(frozen=True)
class DocumentHandle:
    """A document that exists in the store."""

    path: str
    size: int
    modified_at: datetime

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def stem(self) -> str:
        return self.name.rsplit(".", 1)[0]


@runtime_checkable
class DocumentStore(Protocol):
    """Async access to markdown documents addressed by vault-relative paths.

    Paths always use ``/`` separators and never start with ``/``.
    """

    async def exists(self, path: str) -> bool:
        """True when a document or folder lives at *path*."""
        ...

    async def read(self, path: str) -> str:
        """Return the document text. Raises StorageKeyError if missing."""
        ...

    async def create(self, path: str, content: str) -> DocumentHandle:
        """Create a new document. Raises StorageConflictError if it already exists."""
        ...

    async def modify(self, path: str, content: str) -> DocumentHandle:
        """Replace the content of an existing document. Raises StorageKeyError if missing."""
        ...

    async def create_folder(self, path: str) -> None:
        """Create a folder (and parents). Raises StorageConflictError if it already exists."""
        ...

    async def get_abstract_file_by_path(self, path: str) -> DocumentHandle | None:
        """Return a handle for an existing document, or None."""
        ...


class StorageError(SleepSyncError):
    """Base exception for storage errors."""


class StorageKeyError(StorageError, KeyError):
    """Raised when a document doesn't exist."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class StorageConflictError(StorageError):
    """Raised when creating something that already exists."""


class StoragePermissionError(StorageError):
    """Raised when a storage operation is not permitted."""
