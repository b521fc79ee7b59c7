"""JobQueue implementation over an SQS queue using aioboto3."""

from typing import Any, AsyncContextManager, Callable, Optional

import aioboto3
from pydantic import ValidationError

from ..core.logging_config import get_logger
from ..core.models import JobMessage, QueueDelivery

ClientFactory = Callable[[], AsyncContextManager[Any]]

# SQS caps a message's visibility timeout at 12 hours.
MAX_VISIBILITY_TIMEOUT = 12 * 60 * 60


class SqsJobQueue:
    """
    Long-polling SQS consumer and producer for job messages.

    The delivery attempt is the message's ``ApproximateReceiveCount``. A
    retry makes the message visible again after an exponential backoff.
    """

    def __init__(
        self,
        queue_url: str,
        session: Optional[aioboto3.Session] = None,
        region_name: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        wait_seconds: int = 20,
        max_attempts: int = 3,
        base_delay: float = 2.0,
        client_factory: Optional[ClientFactory] = None,
    ):
        self.queue_url = queue_url
        self.wait_seconds = wait_seconds
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        if client_factory is None:
            session = session or aioboto3.Session()

            def client_factory() -> AsyncContextManager[Any]:
                return session.client("sqs", region_name=region_name, endpoint_url=endpoint_url)

        self._client_factory = client_factory
        self._logger = get_logger("queue.sqs")

    def backoff_seconds(self, attempt: int) -> int:
        """``base_delay * 2**(attempt-1)``, clamped to what SQS accepts."""
        delay = self.base_delay * 2 ** max(attempt - 1, 0)
        return int(min(delay, MAX_VISIBILITY_TIMEOUT))

    async def receive(self) -> Optional[QueueDelivery]:
        async with self._client_factory() as client:
            response = await client.receive_message(
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=1,
                WaitTimeSeconds=self.wait_seconds,
                AttributeNames=["ApproximateReceiveCount"],
            )
            for raw in response.get("Messages", []):
                try:
                    message = JobMessage.model_validate_json(raw["Body"])
                except ValidationError as e:
                    self._logger.error(
                        f"Discarding unparsable message {raw.get('MessageId')}: {e}"
                    )
                    await client.delete_message(
                        QueueUrl=self.queue_url, ReceiptHandle=raw["ReceiptHandle"]
                    )
                    continue
                attempt = int(raw.get("Attributes", {}).get("ApproximateReceiveCount", 1))
                return QueueDelivery(
                    delivery_id=raw["MessageId"],
                    message=message,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    receipt=raw["ReceiptHandle"],
                )
        return None

    async def complete(self, delivery: QueueDelivery) -> None:
        async with self._client_factory() as client:
            await client.delete_message(QueueUrl=self.queue_url, ReceiptHandle=delivery.receipt)

    async def retry(self, delivery: QueueDelivery, error: BaseException) -> None:
        delay = self.backoff_seconds(delivery.attempt)
        self._logger.info(
            f"Message {delivery.delivery_id} will be redelivered in {delay}s after: {error}"
        )
        async with self._client_factory() as client:
            await client.change_message_visibility(
                QueueUrl=self.queue_url,
                ReceiptHandle=delivery.receipt,
                VisibilityTimeout=delay,
            )

    async def enqueue(self, photo_id: str, original_key: str) -> str:
        """Send a job message and return its message id."""
        body = JobMessage(photo_id=photo_id, original_key=original_key).model_dump_json(by_alias=True)
        async with self._client_factory() as client:
            response = await client.send_message(QueueUrl=self.queue_url, MessageBody=body)
        self._logger.info(f"Enqueued photo {photo_id} as message {response['MessageId']}")
        return response["MessageId"]
