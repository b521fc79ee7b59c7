"""Long-running queue worker with bounded concurrency."""

import asyncio
from typing import Optional, Set

from ..core.observability import LogContext
from ..core.protocols import JobQueue, LoggerProtocol
from ..core.models import QueueDelivery
from ..core.services import ImageProcessingJob, RecordUpdater


class QueueWorker:
    """
    Pulls deliveries from a JobQueue and runs them through the pipeline.

    At most ``concurrency`` jobs are in flight. A failed job is handed back
    to the queue for redelivery until its attempts run out; the last failure
    marks the photo as ``error`` and acknowledges the message.
    """

    def __init__(
        self,
        queue: JobQueue,
        job: ImageProcessingJob,
        record_updater: RecordUpdater,
        logger: LoggerProtocol,
        concurrency: int = 2,
        poll_error_delay: float = 5.0,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._queue = queue
        self._job = job
        self._record_updater = record_updater
        self._logger = logger
        self.concurrency = concurrency
        self.poll_error_delay = poll_error_delay
        self._semaphore = asyncio.Semaphore(concurrency)
        self._tasks: Set[asyncio.Task] = set()
        self._stopping = asyncio.Event()
        self._receive_task: Optional[asyncio.Task] = None

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    @property
    def running(self) -> bool:
        return self._receive_task is not None and not self._stopping.is_set()

    async def run(self) -> None:
        """Process deliveries until stop() is called, then drain in-flight jobs."""
        self._logger.info(f"Queue worker started with concurrency {self.concurrency}")
        try:
            while not self._stopping.is_set():
                await self._semaphore.acquire()
                if self._stopping.is_set():
                    self._semaphore.release()
                    break

                delivery = await self._next_delivery()
                if delivery is None:
                    self._semaphore.release()
                    continue

                task = asyncio.create_task(self._handle(delivery))
                self._tasks.add(task)
                task.add_done_callback(self._task_done)
        finally:
            if self._tasks:
                self._logger.info(f"Waiting for {len(self._tasks)} in-flight job(s) to finish")
                await asyncio.gather(*self._tasks, return_exceptions=True)
            self._logger.info("Queue worker stopped")

    async def stop(self) -> None:
        """Stop accepting deliveries; run() returns once in-flight jobs finish."""
        self._stopping.set()
        if self._receive_task is not None and not self._receive_task.done():
            self._receive_task.cancel()

    async def _next_delivery(self) -> Optional[QueueDelivery]:
        self._receive_task = asyncio.create_task(self._queue.receive())
        try:
            return await self._receive_task
        except asyncio.CancelledError:
            if self._stopping.is_set():
                return None
            raise
        except Exception as e:
            self._logger.error(f"Failed to receive from queue: {e}")
            await self._sleep_unless_stopping(self.poll_error_delay)
            return None
        finally:
            self._receive_task = None

    async def _sleep_unless_stopping(self, delay: float) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        self._semaphore.release()

    async def _handle(self, delivery: QueueDelivery) -> None:
        message = delivery.message
        log_context = LogContext(
            correlation_id=delivery.delivery_id,
            operation="handle_delivery",
            component="queue_worker",
        ).with_metadata(photo_id=message.photo_id, attempt=delivery.attempt)

        async def report_progress(percent: int) -> None:
            self._logger.debug(f"Job progress {percent}%", log_context)

        try:
            outcome = await self._job.process(
                message, attempt=delivery.attempt, progress=report_progress
            )
        except Exception as e:
            await self._handle_failure(delivery, e, log_context)
            return

        try:
            await self._queue.complete(delivery)
        except Exception as e:
            self._logger.error(f"Failed to acknowledge delivery: {e}", log_context)
            return
        if outcome.skipped:
            self._logger.info(f"Job skipped: {outcome.skip_reason.value}", log_context)
        else:
            self._logger.info("Job completed", log_context)

    async def _handle_failure(
        self, delivery: QueueDelivery, error: Exception, log_context: LogContext
    ) -> None:
        error_context = log_context.with_metadata(error=str(error))
        try:
            if not delivery.retries_exhausted:
                self._logger.warning(
                    f"Job failed on attempt {delivery.attempt}/{delivery.max_attempts}, will retry",
                    error_context,
                )
                await self._queue.retry(delivery, error)
                return

            self._logger.error("Job failed permanently, marking photo as error", error_context)
            await self._record_updater.mark_error(delivery.message.photo_id)
            await self._queue.complete(delivery)
        except Exception as e:
            self._logger.error(f"Failed to settle delivery after job failure: {e}", error_context)
