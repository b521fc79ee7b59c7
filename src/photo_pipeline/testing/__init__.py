"""Testing utilities and fakes for the photo pipeline."""

from .fakes import (
    FakeImageProcessor,
    FakeLogger,
    FakeS3Client,
    FakeStreamingBody,
    InMemoryJobQueue,
    InMemoryPhotoRepository,
    S3Object,
    build_exif_block,
    client_error,
    create_test_image,
)

__all__ = [
    "FakeImageProcessor",
    "FakeLogger",
    "FakeS3Client",
    "FakeStreamingBody",
    "InMemoryJobQueue",
    "InMemoryPhotoRepository",
    "S3Object",
    "build_exif_block",
    "client_error",
    "create_test_image",
]
