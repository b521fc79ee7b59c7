"""Shared fixtures for the photo pipeline tests."""

import uuid

import pytest

from photo_pipeline.core.models import PhotoRecord, PhotoStatus
from photo_pipeline.testing.fakes import FakeLogger, InMemoryPhotoRepository


@pytest.fixture
def photo_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def logger() -> FakeLogger:
    return FakeLogger()


@pytest.fixture
def repository() -> InMemoryPhotoRepository:
    return InMemoryPhotoRepository()


@pytest.fixture
def processing_record(repository, photo_id) -> PhotoRecord:
    return repository.add(
        PhotoRecord(id=photo_id, status=PhotoStatus.PROCESSING, original_filename="IMG_0001.jpg")
    )


@pytest.fixture
def sleep_calls():
    """Record backoff delays instead of sleeping."""
    delays = []

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    fake_sleep.delays = delays
    return fake_sleep
