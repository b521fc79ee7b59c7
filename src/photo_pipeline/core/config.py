"""Process-level configuration loaded from environment variables."""

import tempfile
from typing import Literal, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("structured", "simple")


class PipelineSettings(BaseSettings):
    """Settings shared by the queue worker, the batch handler and the CLI."""

    # Storage
    storage_backend: Literal["filesystem", "s3"] = "filesystem"
    storage_path: str = "./storage"
    s3_bucket: Optional[str] = None
    aws_region: str = "us-east-1"
    s3_endpoint_url: Optional[str] = None
    storage_read_timeout: float = 30.0

    # Workspaces
    temp_root: str = tempfile.gettempdir()

    # Queue worker
    worker_concurrency: int = 2
    queue_url: Optional[str] = None
    queue_wait_seconds: int = 20
    max_attempts: int = 3
    retry_base_delay: float = 2.0

    # Metadata store
    metadata_table: str = "Photos"
    table_prefix: str = ""
    metadata_update_attempts: int = 3
    metadata_update_delay: float = 1.0

    # Logging; the unprefixed LOG_LEVEL / LOG_FORMAT are honoured too
    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("PHOTO_PIPELINE_LOG_LEVEL", "LOG_LEVEL", "log_level"),
    )
    log_format: str = Field(
        default="structured",
        validation_alias=AliasChoices("PHOTO_PIPELINE_LOG_FORMAT", "LOG_FORMAT", "log_format"),
    )

    model_config = SettingsConfigDict(
        env_prefix="PHOTO_PIPELINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def photos_table(self) -> str:
        return f"{self.table_prefix}{self.metadata_table}"

    def ensure_valid(self) -> "PipelineSettings":
        """Check cross-field requirements; raise ConfigurationError if unmet."""
        if self.storage_backend == "s3" and not self.s3_bucket:
            raise ConfigurationError("s3_bucket is required when storage_backend is 's3'")
        if self.worker_concurrency < 1:
            raise ConfigurationError("worker_concurrency must be at least 1")
        if self.max_attempts < 1 or self.metadata_update_attempts < 1:
            raise ConfigurationError("attempt counts must be at least 1")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigurationError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        if self.log_format.lower() not in LOG_FORMATS:
            raise ConfigurationError(f"log_format must be one of {', '.join(LOG_FORMATS)}")
        return self
