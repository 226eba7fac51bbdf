"""
Local filesystem document store.

Maps vault-relative paths onto a directory and does file I/O with aiofiles.
"""

from datetime import datetime
from pathlib import Path

import aiofiles
import aiofiles.os
from loguru import logger

from .base import DocumentHandle, StorageConflictError, StorageKeyError, StoragePermissionError


class LocalDocumentStore:
    """Vault directory on the local filesystem."""

    def __init__(self, base_path: str | Path = "~/vault"):
        self.base_path = Path(base_path).expanduser().resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, key: str) -> Path:
        """Resolve a vault path to an absolute path under ``base_path``.

        Rejects unsafe keys (absolute paths, traversal, empty keys, and
        backslash-delimited paths) to prevent writes outside ``base_path``.
        """
        raw_key = key.strip()
        if not raw_key:
            raise StoragePermissionError("Document path cannot be empty.")
        if "\x00" in raw_key:
            raise StoragePermissionError("Document path cannot contain null bytes.")
        if "\\" in raw_key:
            raise StoragePermissionError("Document path cannot contain backslashes. Use '/' separators.")

        key_path = Path(raw_key)
        if key_path.is_absolute() or raw_key.startswith("~"):
            raise StoragePermissionError(f"Unsafe document path '{key}': absolute paths are not allowed.")

        full_path = (self.base_path / key_path).resolve()
        try:
            full_path.relative_to(self.base_path)
        except ValueError as e:
            raise StoragePermissionError(f"Unsafe document path '{key}': path traversal is not allowed.") from e
        return full_path

    async def _handle(self, key: str, path: Path) -> DocumentHandle:
        st = await aiofiles.os.stat(path)
        return DocumentHandle(path=key, size=st.st_size, modified_at=datetime.fromtimestamp(st.st_mtime))

    async def _write(self, path: Path, content: str, mode: str = "w") -> None:
        try:
            async with aiofiles.open(path, mode, encoding="utf-8") as f:
                await f.write(content)
        except PermissionError as e:
            raise StoragePermissionError(f"Cannot write to {path}: {e}") from e

    async def exists(self, path: str) -> bool:
        return self._get_full_path(path).exists()

    async def read(self, path: str) -> str:
        full_path = self._get_full_path(path)
        if not full_path.is_file():
            raise StorageKeyError(f"Document not found: {path}")
        try:
            async with aiofiles.open(full_path, encoding="utf-8") as f:
                return await f.read()
        except PermissionError as e:
            raise StoragePermissionError(f"Cannot read {full_path}: {e}") from e

    async def create(self, path: str, content: str) -> DocumentHandle:
        full_path = self._get_full_path(path)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            await self._write(full_path, content, mode="x")
        except FileExistsError as e:
            raise StorageConflictError(f"Document already exists: {path}") from e
        logger.debug(f"Created {path}")
        return await self._handle(path, full_path)

    async def modify(self, path: str, content: str) -> DocumentHandle:
        full_path = self._get_full_path(path)
        if not full_path.is_file():
            raise StorageKeyError(f"Document not found: {path}")
        await self._write(full_path, content)
        return await self._handle(path, full_path)

    async def create_folder(self, path: str) -> None:
        full_path = self._get_full_path(path)
        if full_path.exists():
            raise StorageConflictError(f"Folder already exists: {path}")
        try:
            await aiofiles.os.makedirs(full_path, exist_ok=True)
        except PermissionError as e:
            raise StoragePermissionError(f"Cannot create folder {full_path}: {e}") from e

    async def get_abstract_file_by_path(self, path: str) -> DocumentHandle | None:
        full_path = self._get_full_path(path)
        if not full_path.is_file():
            return None
        return await self._handle(path, full_path)
