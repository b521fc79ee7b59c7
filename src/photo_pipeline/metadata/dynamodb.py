"""Photo record repository backed by a DynamoDB table."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, AsyncContextManager, Callable, Dict, Optional, Tuple

import aioboto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError

from ..core.exceptions import StorageError
from ..core.logging_config import get_logger
from ..core.models import PhotoRecord

ClientFactory = Callable[[], AsyncContextManager[Any]]

PHOTO_ITEM_TYPE = "PHOTO"
TIMESTAMP_ATTRIBUTES = ("createdAt", "updatedAt")


def to_epoch_millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def from_epoch_millis(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def _to_attribute(value: Any) -> Any:
    """Replace floats with Decimal, which is all DynamoDB numbers accept."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_attribute(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_attribute(v) for v in value]
    return value


def _from_attribute(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_attribute(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_attribute(v) for v in value]
    return value


class DynamoDBPhotoRepository:
    """
    Thin PhotoRepository adapter over ``get_item``/``update_item``.

    Items use the camelCase attribute names the rest of the system uses,
    keyed by ``id``. Timestamps are epoch milliseconds because ``createdAt``
    is the numeric sort key of the table's indexes, and every item carries
    ``_type = "PHOTO"``. ``save`` only SETs the attributes the model knows,
    so attributes written by other services are left alone.
    """

    def __init__(
        self,
        table_name: str,
        session: Optional[aioboto3.Session] = None,
        region_name: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        client_factory: Optional[ClientFactory] = None,
    ):
        self.table_name = table_name
        if client_factory is None:
            session = session or aioboto3.Session()

            def client_factory() -> AsyncContextManager[Any]:
                return session.client(
                    "dynamodb", region_name=region_name, endpoint_url=endpoint_url
                )

        self._client_factory = client_factory
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()
        self._logger = get_logger("metadata.dynamodb")

    def _attributes(self, record: PhotoRecord) -> Dict[str, Any]:
        """Attribute values for every non-key field, in table format."""
        values = record.model_dump(
            by_alias=True,
            mode="json",
            exclude_none=True,
            exclude={"id", "created_at", "updated_at"},
        )
        values["createdAt"] = to_epoch_millis(record.created_at)
        values["updatedAt"] = to_epoch_millis(record.updated_at)
        values["_type"] = PHOTO_ITEM_TYPE
        return {name: self._serializer.serialize(value) for name, value in _to_attribute(values).items()}

    def _update_expression(
        self, record: PhotoRecord
    ) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        names: Dict[str, str] = {}
        values: Dict[str, Any] = {}
        assignments = []
        for index, (name, value) in enumerate(self._attributes(record).items()):
            names[f"#a{index}"] = name
            values[f":v{index}"] = value
            assignments.append(f"#a{index} = :v{index}")
        return "SET " + ", ".join(assignments), names, values

    def _deserialize(self, item: Dict[str, Any]) -> PhotoRecord:
        plain = _from_attribute(
            {name: self._deserializer.deserialize(value) for name, value in item.items()}
        )
        for name in TIMESTAMP_ATTRIBUTES:
            if isinstance(plain.get(name), (int, float)):
                plain[name] = from_epoch_millis(plain[name])
        return PhotoRecord.model_validate(plain)

    async def find_by_id(self, photo_id: str) -> Optional[PhotoRecord]:
        try:
            async with self._client_factory() as client:
                response = await client.get_item(
                    TableName=self.table_name,
                    Key={"id": {"S": photo_id}},
                    ConsistentRead=True,
                )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to read photo {photo_id} from {self.table_name}: {e}") from e
        item = response.get("Item")
        if not item:
            return None
        return self._deserialize(item)

    async def save(self, record: PhotoRecord) -> None:
        expression, names, values = self._update_expression(record)
        try:
            async with self._client_factory() as client:
                await client.update_item(
                    TableName=self.table_name,
                    Key={"id": {"S": record.id}},
                    UpdateExpression=expression,
                    ExpressionAttributeNames=names,
                    ExpressionAttributeValues=values,
                )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to save photo {record.id} to {self.table_name}: {e}") from e
        self._logger.debug(f"Saved photo {record.id} with status {record.status.value}")
