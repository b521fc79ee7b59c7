"""Per-attempt temporary workspace with guaranteed cleanup."""

import asyncio
import shutil
from pathlib import Path
from typing import Optional, Union

from .exceptions import InvalidKeyError
from .logging_config import get_logger
from ..storage.base import is_valid_photo_id


class TempWorkspace:
    """
    Exclusive scratch directory for one job attempt.

    The directory name is derived from ``(photo_id, attempt)`` so that a
    redelivery never shares a directory with a crashed earlier attempt.
    Used as an async context manager, the directory is destroyed on every
    exit path; a failed deletion is logged and never raised.
    """

    def __init__(self, root: Union[str, Path], photo_id: str, attempt: int = 1):
        if not is_valid_photo_id(photo_id):
            raise InvalidKeyError(f"Invalid photo id for a workspace: {photo_id!r}")
        self.root = Path(root)
        self.photo_id = photo_id
        self.attempt = attempt
        self.path = self.root / f"photo-worker-{photo_id}-{attempt}"
        self._logger = get_logger("workspace")

    def create(self) -> Path:
        if self.path.exists():
            self._logger.warning(f"Removing stale workspace left by an earlier run: {self.path}")
            shutil.rmtree(self.path)
        self.path.mkdir(parents=True)
        return self.path

    def destroy(self) -> None:
        shutil.rmtree(self.path)

    def file_path(self, name: str) -> Path:
        return self.path / name

    async def __aenter__(self) -> "TempWorkspace":
        await asyncio.to_thread(self.create)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> Optional[bool]:
        try:
            await asyncio.to_thread(self.destroy)
        except Exception as e:
            self._logger.warning(f"Failed to clean up temp dir: {self.path} ({e})")
        return False
