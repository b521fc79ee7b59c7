"""Shared data models for the photo pipeline."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys, as other services store them."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PhotoStatus(str, Enum):
    """Lifecycle status of a photo record."""

    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class ExifData(CamelModel):
    """Normalized camera metadata. GPS, serial and software tags are never kept."""

    camera_make: Optional[str] = None
    camera_model: Optional[str] = None
    lens: Optional[str] = None
    focal_length: Optional[float] = None
    aperture: Optional[float] = None
    shutter_speed: Optional[str] = None
    iso: Optional[int] = None
    date_taken: Optional[str] = None
    white_balance: Optional[str] = None
    metering_mode: Optional[str] = None
    flash: Optional[str] = None


class PhotoRecord(CamelModel):
    """A photo as stored in the external metadata store."""

    id: str
    status: PhotoStatus = PhotoStatus.PROCESSING
    title: Optional[str] = None
    description: Optional[str] = None
    original_filename: Optional[str] = None
    blur_data_url: Optional[str] = None
    exif_data: Optional[ExifData] = None
    width: Optional[int] = None
    height: Optional[int] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class JobMessage(CamelModel):
    """Queue payload / batch record body: ``{"photoId", "originalKey"}``."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    photo_id: str
    original_key: str


class ImageJobResult(BaseModel):
    """Data produced by a completed job."""

    photo_id: str
    derivatives: List[str] = Field(default_factory=list)
    blur_data_url: str
    exif_data: Optional[ExifData] = None
    width: int
    height: int


class OutcomeStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"


class SkipReason(str, Enum):
    MISSING_RECORD = "missing_record"
    ALREADY_READY = "already_ready"


class JobOutcome(BaseModel):
    """Result of one pipeline run. Failures are raised, never returned."""

    photo_id: str
    status: OutcomeStatus
    skip_reason: Optional[SkipReason] = None
    result: Optional[ImageJobResult] = None
    record_updated: bool = False
    processing_time: float = 0.0

    @property
    def skipped(self) -> bool:
        return self.status is OutcomeStatus.SKIPPED

    @classmethod
    def skip(cls, photo_id: str, reason: SkipReason) -> "JobOutcome":
        return cls(photo_id=photo_id, status=OutcomeStatus.SKIPPED, skip_reason=reason)


class QueueDelivery(BaseModel):
    """One delivery of a job message by a queue transport."""

    delivery_id: str
    message: JobMessage
    attempt: int = 1
    max_attempts: int = 3
    receipt: Optional[str] = None

    @property
    def retries_exhausted(self) -> bool:
        return self.attempt >= self.max_attempts
