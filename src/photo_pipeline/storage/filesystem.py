"""Storage backend over a local directory tree."""

import asyncio
import shutil
from pathlib import Path
from typing import AsyncIterator, List, Union

from ..core.exceptions import InvalidKeyError, NotFoundError, StorageError
from ..core.logging_config import get_logger
from .base import normalize_prefix, validate_key

CHUNK_SIZE = 64 * 1024


class FilesystemStorageAdapter:
    """
    Blob storage rooted at a local directory.

    Keys map to paths below ``root``; every resolved path is checked to stay
    inside the root before it is touched. Blocking file work runs in a
    worker thread.
    """

    def __init__(self, root: Union[str, Path], chunk_size: int = CHUNK_SIZE):
        self.root = Path(root).resolve()
        self.chunk_size = chunk_size
        self._logger = get_logger("storage.filesystem")

    def _resolve(self, relative: str) -> Path:
        path = (self.root / relative).resolve()
        if path != self.root and self.root not in path.parents:
            raise InvalidKeyError(f"Key escapes storage root: {relative!r}")
        return path

    def _path_for_key(self, key: str) -> Path:
        return self._resolve(validate_key(key))

    def _relative_key(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    async def save_file(self, key: str, data: bytes, content_type: str) -> None:
        path = self._path_for_key(key)

        def write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(write)
        except OSError as e:
            raise StorageError(f"Failed to write {key}: {e}") from e
        self._logger.debug(f"Saved {key} ({len(data)} bytes, {content_type})")

    async def get_file(self, key: str) -> bytes:
        path = self._path_for_key(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            raise NotFoundError(key) from None
        except OSError as e:
            raise StorageError(f"Failed to read {key}: {e}") from e

    async def get_file_stream(self, key: str) -> AsyncIterator[bytes]:
        path = self._path_for_key(key)
        try:
            handle = await asyncio.to_thread(path.open, "rb")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            raise NotFoundError(key) from None
        except OSError as e:
            raise StorageError(f"Failed to open {key}: {e}") from e
        return self._iter_chunks(handle)

    async def _iter_chunks(self, handle) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await asyncio.to_thread(handle.read, self.chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            handle.close()

    async def delete_files(self, prefix: str) -> None:
        directory = normalize_prefix(prefix)
        target = self._resolve(directory.rstrip("/")) if directory else self.root

        def remove() -> None:
            if target == self.root:
                for child in self.root.iterdir():
                    if child.is_dir() and not child.is_symlink():
                        shutil.rmtree(child)
                    else:
                        child.unlink()
            elif target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            elif target.exists() or target.is_symlink():
                target.unlink()

        if not self.root.exists():
            return
        try:
            await asyncio.to_thread(remove)
        except OSError as e:
            raise StorageError(f"Failed to delete {prefix!r}: {e}") from e

    async def file_exists(self, key: str) -> bool:
        path = self._path_for_key(key)
        return await asyncio.to_thread(path.is_file)

    async def list_files(self, prefix: str) -> List[str]:
        directory = normalize_prefix(prefix)
        target = self._resolve(directory.rstrip("/")) if directory else self.root

        def walk() -> List[str]:
            if target.is_file():
                return [self._relative_key(target)]
            if not target.is_dir():
                return []
            return sorted(
                self._relative_key(path) for path in target.rglob("*") if path.is_file()
            )

        return await asyncio.to_thread(walk)
