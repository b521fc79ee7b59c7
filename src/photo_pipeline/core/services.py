"""Service implementations for the photo derivative pipeline."""

import asyncio
import time
from pathlib import Path, PurePosixPath
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from . import exif_service, image_utils
from .error_handling import retry_metadata_update, with_error_handling
from .exceptions import MetadataUpdateError, PhotoPipelineError, ProcessingError, StorageError
from .image_utils import DEFAULT_SPEC, DerivativeSpec
from .models import (
    ExifData,
    ImageJobResult,
    JobMessage,
    JobOutcome,
    OutcomeStatus,
    PhotoStatus,
    SkipReason,
    utc_now,
)
from .observability import LogContext
from .protocols import (
    ImageProcessorProtocol,
    LoggerProtocol,
    PhotoRepository,
    ProgressCallback,
    StorageAdapter,
)
from .workspace import TempWorkspace
from ..storage.base import derivative_key


class ImageProcessorService:
    """Derivative encoder and metadata extraction over local files."""

    def __init__(self, spec: DerivativeSpec = DEFAULT_SPEC):
        self.spec = spec

    @with_error_handling
    def generate_derivatives(self, source_path: Path, output_dir: Path) -> List[Path]:
        return image_utils.generate_derivatives(source_path, output_dir, self.spec)

    @with_error_handling
    def read_dimensions(self, source_path: Path) -> Tuple[int, int]:
        return image_utils.read_rotated_dimensions(source_path)

    def extract_exif(self, source_path: Path) -> Optional[ExifData]:
        return exif_service.extract_exif(source_path)

    @with_error_handling
    def generate_blur_placeholder(self, source_path: Path) -> str:
        return image_utils.generate_blur_placeholder(source_path, self.spec)


class RecordUpdater:
    """
    Terminal status writes against the metadata store.

    Every write re-reads the record, applies its change and saves it back,
    retried with linear backoff. Exhausted retries are logged and reported
    as ``False``; they are never raised.
    """

    def __init__(
        self,
        repository: PhotoRepository,
        logger: LoggerProtocol,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._repository = repository
        self._logger = logger
        self._retry = retry_metadata_update(
            max_attempts=max_attempts, base_delay=base_delay, sleep=sleep
        )

    async def mark_ready(self, photo_id: str, result: ImageJobResult) -> bool:
        async def write_ready_status():
            record = await self._repository.find_by_id(photo_id)
            if record is None:
                self._logger.warning(f"Photo {photo_id} disappeared before it was marked ready")
                return
            await self._repository.save(
                record.model_copy(
                    update={
                        "status": PhotoStatus.READY,
                        "width": result.width,
                        "height": result.height,
                        "blur_data_url": result.blur_data_url,
                        "exif_data": result.exif_data,
                        "updated_at": utc_now(),
                    }
                )
            )

        return await self._run(write_ready_status, photo_id)

    async def mark_error(self, photo_id: str) -> bool:
        async def write_error_status():
            record = await self._repository.find_by_id(photo_id)
            if record is None:
                return
            await self._repository.save(
                record.model_copy(update={"status": PhotoStatus.ERROR, "updated_at": utc_now()})
            )

        return await self._run(write_error_status, photo_id)

    async def _run(self, write: Callable[[], Awaitable[None]], photo_id: str) -> bool:
        try:
            await self._retry(write)()
            return True
        except MetadataUpdateError as e:
            self._logger.error(f"Giving up on status update for photo {photo_id}: {e}")
            return False


class ImageProcessingJob:
    """Processes one job message from download through the ready write."""

    def __init__(
        self,
        storage: StorageAdapter,
        repository: PhotoRepository,
        image_processor: ImageProcessorProtocol,
        record_updater: RecordUpdater,
        temp_root: Path,
        logger: LoggerProtocol,
        spec: DerivativeSpec = DEFAULT_SPEC,
        workspace_factory: Callable[[Path, str, int], TempWorkspace] = TempWorkspace,
    ):
        self._storage = storage
        self._repository = repository
        self._image_processor = image_processor
        self._record_updater = record_updater
        self._temp_root = Path(temp_root)
        self._logger = logger
        self._content_types = spec.content_types
        self._workspace_factory = workspace_factory

    @property
    def record_updater(self) -> RecordUpdater:
        return self._record_updater

    async def process(
        self,
        message: JobMessage,
        attempt: int = 1,
        progress: Optional[ProgressCallback] = None,
    ) -> JobOutcome:
        """
        Run the pipeline for one message.

        Returns a skipped outcome when the record is missing or already
        ready. Failures propagate after the workspace has been removed:
        storage read errors unchanged, everything else as ProcessingError.
        """
        start_time = time.time()
        photo_id = message.photo_id
        log_context = LogContext(
            correlation_id=photo_id,
            operation="process_image",
            component="image_processing_job",
        ).with_metadata(original_key=message.original_key, attempt=attempt)

        record = await self._repository.find_by_id(photo_id)
        if record is None:
            self._logger.warning("Photo record not found, skipping", log_context)
            return JobOutcome.skip(photo_id, SkipReason.MISSING_RECORD)
        if record.status is PhotoStatus.READY:
            self._logger.info("Photo already processed, skipping", log_context)
            return JobOutcome.skip(photo_id, SkipReason.ALREADY_READY)

        async with self._workspace_factory(self._temp_root, photo_id, attempt) as workspace:
            try:
                result = await self._generate(message, workspace, progress, log_context)
            except PhotoPipelineError:
                raise
            except Exception as e:
                raise ProcessingError(f"Processing failed for photo {photo_id}: {e}") from e

            record_updated = await self._record_updater.mark_ready(photo_id, result)

        outcome = JobOutcome(
            photo_id=photo_id,
            status=OutcomeStatus.COMPLETED,
            result=result,
            record_updated=record_updated,
            processing_time=time.time() - start_time,
        )
        self._logger.info(
            "Successfully processed photo",
            log_context,
            derivatives=len(result.derivatives),
            processing_time_ms=outcome.processing_time * 1000,
        )
        return outcome

    async def _generate(
        self,
        message: JobMessage,
        workspace: TempWorkspace,
        progress: Optional[ProgressCallback],
        log_context: LogContext,
    ) -> ImageJobResult:
        photo_id = message.photo_id

        self._logger.debug("Downloading original", log_context.with_operation("download_original"))
        data = await self._storage.get_file(message.original_key)
        staged = workspace.file_path(PurePosixPath(message.original_key).name)
        await asyncio.to_thread(staged.write_bytes, data)
        await self._report(progress, 10, log_context)

        self._logger.debug("Generating derivatives", log_context.with_operation("generate_derivatives"))
        await asyncio.to_thread(self._image_processor.generate_derivatives, staged, workspace.path)
        await self._report(progress, 80, log_context)

        width, height = await asyncio.to_thread(self._image_processor.read_dimensions, staged)
        exif_data = await asyncio.to_thread(self._image_processor.extract_exif, staged)
        await self._report(progress, 90, log_context)

        blur_data_url = await asyncio.to_thread(
            self._image_processor.generate_blur_placeholder, staged
        )
        await self._report(progress, 100, log_context)

        derivatives = await self._upload_derivatives(photo_id, workspace.path, staged.name, log_context)

        return ImageJobResult(
            photo_id=photo_id,
            derivatives=derivatives,
            blur_data_url=blur_data_url,
            exif_data=exif_data,
            width=width,
            height=height,
        )

    async def _upload_derivatives(
        self, photo_id: str, directory: Path, staged_name: str, log_context: LogContext
    ) -> List[str]:
        entries = await asyncio.to_thread(lambda: sorted(directory.iterdir()))
        uploaded: List[str] = []

        for entry in entries:
            if entry.name == staged_name or entry.name.startswith("original"):
                continue
            if entry.is_symlink() or not entry.is_file():
                continue
            content_type = self._content_types.get(entry.suffix.lower())
            if content_type is None:
                continue

            key = derivative_key(photo_id, entry.name)
            data = await asyncio.to_thread(entry.read_bytes)
            try:
                await self._storage.save_file(key, data, content_type)
            except StorageError as e:
                raise ProcessingError(f"Failed to upload {key}: {e}") from e
            uploaded.append(key)

        self._logger.debug(
            "Uploaded derivatives", log_context.with_operation("upload_derivatives"), count=len(uploaded)
        )
        return uploaded

    async def _report(
        self, progress: Optional[ProgressCallback], percent: int, log_context: LogContext
    ) -> None:
        if progress is None:
            return
        try:
            await progress(percent)
        except Exception as e:
            self._logger.warning(f"Progress callback failed at {percent}%: {e}", log_context)
