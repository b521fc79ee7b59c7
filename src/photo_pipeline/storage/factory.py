"""Storage backend selection."""

from typing import Optional

from ..core.config import PipelineSettings
from ..core.exceptions import ConfigurationError
from ..core.protocols import StorageAdapter
from .filesystem import FilesystemStorageAdapter
from .s3 import S3StorageAdapter, session_client_factory

_adapter: Optional[StorageAdapter] = None


def create_storage_adapter(settings: PipelineSettings) -> StorageAdapter:
    """Build the backend named by ``settings.storage_backend``."""
    if settings.storage_backend == "filesystem":
        return FilesystemStorageAdapter(settings.storage_path)
    if settings.storage_backend == "s3":
        if not settings.s3_bucket:
            raise ConfigurationError("s3_bucket is required when storage_backend is 's3'")
        return S3StorageAdapter(
            settings.s3_bucket,
            client_factory=session_client_factory(
                region_name=settings.aws_region, endpoint_url=settings.s3_endpoint_url
            ),
            read_timeout=settings.storage_read_timeout,
        )
    raise ConfigurationError(f"Unknown storage backend: {settings.storage_backend!r}")


def get_storage_adapter(settings: Optional[PipelineSettings] = None) -> StorageAdapter:
    """Process-wide adapter, created on first use."""
    global _adapter
    if _adapter is None:
        _adapter = create_storage_adapter(settings or PipelineSettings())
    return _adapter


def reset_storage_adapter() -> None:
    """Forget the process-wide adapter. Intended for tests."""
    global _adapter
    _adapter = None
