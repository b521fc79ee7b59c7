"""Serverless batch entry point with partial-failure reporting."""

import asyncio
import json
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..core.error_handling import BatchOperationContextManager
from ..core.logging_config import get_logger
from ..core.models import JobMessage
from ..core.observability import LogContext
from ..core.protocols import LoggerProtocol
from ..core.services import ImageProcessingJob, RecordUpdater

_batch_handler: Optional["BatchHandler"] = None


class BatchHandler:
    """
    Processes an SQS-style event one record at a time.

    A record that fails for any reason is reported in ``batchItemFailures``
    so the platform redelivers only that record; when its body names a
    photo, that photo is also marked as ``error``.
    """

    def __init__(
        self,
        job: ImageProcessingJob,
        record_updater: RecordUpdater,
        logger: LoggerProtocol,
    ):
        self._job = job
        self._record_updater = record_updater
        self._logger = logger

    async def handle(self, event: Dict[str, Any]) -> Dict[str, List[Dict[str, str]]]:
        records = event.get("Records", [])
        self._logger.info(f"Processing {len(records)} record(s)")

        with BatchOperationContextManager("Photo batch") as batch:
            for record in records:
                message_id = record.get("messageId", "unknown")
                try:
                    await self._process_record(record, message_id)
                except Exception as e:
                    batch.add_error(str(e), item_identifier=message_id)

        return {
            "batchItemFailures": [{"itemIdentifier": item} for item in batch.failed_items]
        }

    async def _process_record(self, record: Dict[str, Any], message_id: str) -> None:
        try:
            message = JobMessage.model_validate_json(record.get("body") or "")
        except ValidationError as e:
            self._logger.error(f"Unparsable body in message {message_id}: {e}")
            photo_id = _photo_id_from_body(record.get("body"))
            if photo_id is not None:
                await self._record_updater.mark_error(photo_id)
            raise

        attempt = int(record.get("attributes", {}).get("ApproximateReceiveCount", 1))
        log_context = LogContext(
            correlation_id=message_id,
            operation="handle_record",
            component="batch_handler",
        ).with_metadata(photo_id=message.photo_id, attempt=attempt)

        try:
            outcome = await self._job.process(message, attempt=attempt)
        except Exception as e:
            self._logger.error("Record failed, marking photo as error", log_context.with_metadata(error=str(e)))
            await self._record_updater.mark_error(message.photo_id)
            raise

        if outcome.skipped:
            self._logger.info(f"Record skipped: {outcome.skip_reason.value}", log_context)
        else:
            self._logger.info("Record processed", log_context)


def _photo_id_from_body(body: Optional[str]) -> Optional[str]:
    """Best-effort ``photoId`` from a body that failed validation."""
    try:
        payload = json.loads(body or "")
    except ValueError:
        return None
    if isinstance(payload, dict) and isinstance(payload.get("photoId"), str):
        return payload["photoId"]
    return None


def set_batch_handler_for_testing(handler_instance: Optional[BatchHandler]) -> None:
    """Replace (or with None, reset) the handler used by ``handler``."""
    global _batch_handler
    _batch_handler = handler_instance


def _get_batch_handler() -> BatchHandler:
    global _batch_handler
    if _batch_handler is None:
        from ..core.config import PipelineSettings
        from ..core.factories import ProcessingPipelineFactory

        _batch_handler = ProcessingPipelineFactory.create_batch_handler(
            PipelineSettings().ensure_valid()
        )
    return _batch_handler


def handler(event: Dict[str, Any], context: Any = None) -> Dict[str, List[Dict[str, str]]]:
    """Synchronous serverless entry point."""
    batch_handler = _get_batch_handler()
    request_id = getattr(context, "aws_request_id", None)
    if request_id:
        get_logger("batch").info(f"Invocation {request_id}")
    return asyncio.run(batch_handler.handle(event))
