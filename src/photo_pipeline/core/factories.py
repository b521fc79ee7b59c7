"""Factory classes for creating configured service instances."""

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from .config import PipelineSettings
from .exceptions import ConfigurationError
from .observability import create_logger
from .protocols import (
    ImageProcessorProtocol,
    JobQueue,
    LoggerProtocol,
    PhotoRepository,
    StorageAdapter,
)
from .services import ImageProcessingJob, ImageProcessorService, RecordUpdater
from ..metadata.dynamodb import DynamoDBPhotoRepository
from ..processors.batch import BatchHandler
from ..processors.sqs_queue import SqsJobQueue
from ..processors.worker import QueueWorker
from ..storage.factory import create_storage_adapter


class ProcessingPipelineFactory:
    """Factory for creating the complete processing pipeline."""

    @staticmethod
    def create_repository(settings: PipelineSettings) -> PhotoRepository:
        return DynamoDBPhotoRepository(
            settings.photos_table,
            region_name=settings.aws_region,
        )

    @staticmethod
    def create_queue(settings: PipelineSettings) -> SqsJobQueue:
        if not settings.queue_url:
            raise ConfigurationError("queue_url is required to consume or send job messages")
        return SqsJobQueue(
            settings.queue_url,
            region_name=settings.aws_region,
            wait_seconds=settings.queue_wait_seconds,
            max_attempts=settings.max_attempts,
            base_delay=settings.retry_base_delay,
        )

    @staticmethod
    def create_record_updater(
        repository: PhotoRepository,
        settings: Optional[PipelineSettings] = None,
        logger: Optional[LoggerProtocol] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> RecordUpdater:
        settings = settings or PipelineSettings()
        return RecordUpdater(
            repository,
            logger or create_logger("record_updater"),
            max_attempts=settings.metadata_update_attempts,
            base_delay=settings.metadata_update_delay,
            sleep=sleep,
        )

    @staticmethod
    def create_job(
        settings: Optional[PipelineSettings] = None,
        storage: Optional[StorageAdapter] = None,
        repository: Optional[PhotoRepository] = None,
        image_processor: Optional[ImageProcessorProtocol] = None,
        logger: Optional[LoggerProtocol] = None,
        record_updater: Optional[RecordUpdater] = None,
    ) -> ImageProcessingJob:
        """Create a job, building any dependency that was not injected from settings."""
        settings = settings or PipelineSettings()

        if storage is None:
            storage = create_storage_adapter(settings)
        if repository is None:
            repository = ProcessingPipelineFactory.create_repository(settings)
        if image_processor is None:
            image_processor = ImageProcessorService()
        if logger is None:
            logger = create_logger("image_processing_job")
        if record_updater is None:
            record_updater = ProcessingPipelineFactory.create_record_updater(
                repository, settings, logger
            )

        return ImageProcessingJob(
            storage=storage,
            repository=repository,
            image_processor=image_processor,
            record_updater=record_updater,
            temp_root=Path(settings.temp_root),
            logger=logger,
        )

    @staticmethod
    def create_worker(
        settings: Optional[PipelineSettings] = None,
        queue: Optional[JobQueue] = None,
        job: Optional[ImageProcessingJob] = None,
        logger: Optional[LoggerProtocol] = None,
    ) -> QueueWorker:
        settings = settings or PipelineSettings()
        if job is None:
            job = ProcessingPipelineFactory.create_job(settings)
        if queue is None:
            queue = ProcessingPipelineFactory.create_queue(settings)
        return QueueWorker(
            queue,
            job,
            job.record_updater,
            logger or create_logger("queue_worker"),
            concurrency=settings.worker_concurrency,
        )

    @staticmethod
    def create_batch_handler(
        settings: Optional[PipelineSettings] = None,
        job: Optional[ImageProcessingJob] = None,
        logger: Optional[LoggerProtocol] = None,
    ) -> BatchHandler:
        if job is None:
            job = ProcessingPipelineFactory.create_job(settings)
        return BatchHandler(job, job.record_updater, logger or create_logger("batch_handler"))
