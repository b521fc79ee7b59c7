"""Runtimes that drive the processing job: queue worker, batch handler, SQS transport."""

from .batch import BatchHandler, handler, set_batch_handler_for_testing
from .sqs_queue import SqsJobQueue
from .worker import QueueWorker

__all__ = [
    "BatchHandler",
    "handler",
    "set_batch_handler_for_testing",
    "SqsJobQueue",
    "QueueWorker",
]
