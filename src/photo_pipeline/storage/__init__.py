"""Blob storage backends for originals and derivatives."""

from .base import (
    ORIGINALS_PREFIX,
    PROCESSED_PREFIX,
    delete_photo_files,
    derivative_key,
    find_original_key,
    is_valid_photo_id,
    normalize_prefix,
    original_key,
    validate_key,
)
from .factory import create_storage_adapter, get_storage_adapter, reset_storage_adapter
from .filesystem import FilesystemStorageAdapter
from .s3 import S3StorageAdapter, session_client_factory

__all__ = [
    "ORIGINALS_PREFIX",
    "PROCESSED_PREFIX",
    "FilesystemStorageAdapter",
    "S3StorageAdapter",
    "create_storage_adapter",
    "delete_photo_files",
    "derivative_key",
    "find_original_key",
    "get_storage_adapter",
    "is_valid_photo_id",
    "normalize_prefix",
    "original_key",
    "reset_storage_adapter",
    "session_client_factory",
    "validate_key",
]
