"""Custom exceptions for the photo pipeline."""

from __future__ import annotations


class PhotoPipelineError(Exception):
    """Base exception for all photo pipeline errors."""


class ConfigurationError(PhotoPipelineError):
    """Error raised for invalid configuration options."""


class StorageError(PhotoPipelineError):
    """Error raised for storage backend failures."""


class NotFoundError(StorageError):
    """Error raised when a storage object does not exist."""

    def __init__(self, key: str):
        super().__init__(f"File not found: {key}")
        self.key = key


class InvalidKeyError(StorageError, ValueError):
    """Error raised for malformed or path-traversing storage keys."""


class TransientStorageError(StorageError):
    """Error raised for timeouts and network failures on storage reads."""


class MalformedExifError(PhotoPipelineError):
    """Error raised when an EXIF block has no valid TIFF header."""


class ProcessingError(PhotoPipelineError):
    """Error raised when generating or uploading derivatives fails."""


class MetadataUpdateError(PhotoPipelineError):
    """Error raised when a terminal status write to the metadata store fails."""
