"""
Storage backends for sleepsync.

Provides the async :class:`DocumentStore` interface used by the writer and
a local filesystem implementation over a vault directory.
"""

from .base import (
    DocumentHandle,
    DocumentStore,
    StorageConflictError,
    StorageError,
    StorageKeyError,
    StoragePermissionError,
)
from .local import LocalDocumentStore

__all__ = [
    "DocumentHandle",
    "DocumentStore",
    "LocalDocumentStore",
    "StorageConflictError",
    "StorageError",
    "StorageKeyError",
    "StoragePermissionError",
]
