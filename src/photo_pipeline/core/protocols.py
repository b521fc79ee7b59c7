"""Protocol definitions for dependency injection and testability."""

from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, Protocol, Tuple

from .models import ExifData, PhotoRecord, QueueDelivery


ProgressCallback = Callable[[int], Awaitable[None]]


class StorageAdapter(Protocol):
    """Uniform blob storage over a local tree or a remote object store."""

    async def save_file(self, key: str, data: bytes, content_type: str) -> None:
        """Write or overwrite ``key``."""
        ...

    async def get_file(self, key: str) -> bytes:
        """Read ``key``; raise NotFoundError if absent."""
        ...

    async def get_file_stream(self, key: str) -> AsyncIterator[bytes]:
        """Open ``key`` as a chunk iterator; raise NotFoundError if absent."""
        ...

    async def delete_files(self, prefix: str) -> None:
        """Delete everything under ``prefix``; no-op if nothing matches."""
        ...

    async def file_exists(self, key: str) -> bool:
        ...

    async def list_files(self, prefix: str) -> List[str]:
        """List keys under ``prefix`` relative to the storage root."""
        ...


class PhotoRepository(Protocol):
    """Read/write contract of the external metadata store."""

    async def find_by_id(self, photo_id: str) -> Optional[PhotoRecord]:
        ...

    async def save(self, record: PhotoRecord) -> None:
        """Upsert ``record`` by id."""
        ...


class JobQueue(Protocol):
    """Message transport consumed by the queue worker."""

    async def receive(self) -> Optional[QueueDelivery]:
        """Wait for the next delivery; None when the poll timed out empty."""
        ...

    async def complete(self, delivery: QueueDelivery) -> None:
        """Acknowledge ``delivery`` so it is never redelivered."""
        ...

    async def retry(self, delivery: QueueDelivery, error: BaseException) -> None:
        """Hand ``delivery`` back for redelivery with the queue's backoff."""
        ...


class ImageProcessorProtocol(Protocol):
    """Protocol for the derivative encoder and metadata extraction."""

    def generate_derivatives(self, source_path: Path, output_dir: Path) -> List[Path]:
        ...

    def read_dimensions(self, source_path: Path) -> Tuple[int, int]:
        ...

    def extract_exif(self, source_path: Path) -> Optional[ExifData]:
        ...

    def generate_blur_placeholder(self, source_path: Path) -> str:
        ...


class LoggerProtocol(Protocol):
    """Protocol for logging operations."""

    def debug(self, message: str, context: Any = None, **kwargs: Any) -> None:
        ...

    def info(self, message: str, context: Any = None, **kwargs: Any) -> None:
        ...

    def warning(self, message: str, context: Any = None, **kwargs: Any) -> None:
        ...

    def error(self, message: str, context: Any = None, **kwargs: Any) -> None:
        ...
