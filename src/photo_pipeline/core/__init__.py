"""Core utilities and shared components for the photo pipeline."""

from .config import PipelineSettings
from .exceptions import (
    ConfigurationError,
    InvalidKeyError,
    MalformedExifError,
    MetadataUpdateError,
    NotFoundError,
    PhotoPipelineError,
    ProcessingError,
    StorageError,
    TransientStorageError,
)
from .error_handling import (
    BatchOperationContextManager,
    retry_metadata_update,
    with_error_handling,
)
from .exif_service import extract_exif
from .image_utils import (
    DEFAULT_SPEC,
    DerivativeSpec,
    generate_blur_placeholder,
    generate_derivatives,
    read_rotated_dimensions,
)
from .logging_config import get_logger, setup_logger
from .models import (
    ExifData,
    ImageJobResult,
    JobMessage,
    JobOutcome,
    OutcomeStatus,
    PhotoRecord,
    PhotoStatus,
    QueueDelivery,
    SkipReason,
)
from .services import ImageProcessingJob, ImageProcessorService, RecordUpdater
from .workspace import TempWorkspace

__all__ = [
    "PipelineSettings",
    "ConfigurationError",
    "InvalidKeyError",
    "MalformedExifError",
    "MetadataUpdateError",
    "NotFoundError",
    "PhotoPipelineError",
    "ProcessingError",
    "StorageError",
    "TransientStorageError",
    "BatchOperationContextManager",
    "retry_metadata_update",
    "with_error_handling",
    "extract_exif",
    "DEFAULT_SPEC",
    "DerivativeSpec",
    "generate_blur_placeholder",
    "generate_derivatives",
    "read_rotated_dimensions",
    "get_logger",
    "setup_logger",
    "ExifData",
    "ImageJobResult",
    "JobMessage",
    "JobOutcome",
    "OutcomeStatus",
    "PhotoRecord",
    "PhotoStatus",
    "QueueDelivery",
    "SkipReason",
    "ImageProcessingJob",
    "ImageProcessorService",
    "RecordUpdater",
    "TempWorkspace",
]
