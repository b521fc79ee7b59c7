"""Storage backend over an S3 bucket using aioboto3."""

import asyncio
from contextlib import AsyncExitStack
from typing import Any, AsyncContextManager, AsyncIterator, Callable, List, Optional

import aioboto3
from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from ..core.exceptions import NotFoundError, StorageError, TransientStorageError
from ..core.logging_config import get_logger
from .base import normalize_prefix, validate_key

NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound"})
NETWORK_ERRORS = (
    EndpointConnectionError,
    ConnectionClosedError,
    ConnectTimeoutError,
    ReadTimeoutError,
)
DELETE_BATCH_SIZE = 1000
CHUNK_SIZE = 64 * 1024

ClientFactory = Callable[[], AsyncContextManager[Any]]


def session_client_factory(
    region_name: Optional[str] = None, endpoint_url: Optional[str] = None
) -> ClientFactory:
    """Client factory backed by a shared aioboto3 session."""
    session = aioboto3.Session()

    def factory() -> AsyncContextManager[Any]:
        return session.client("s3", region_name=region_name, endpoint_url=endpoint_url)

    return factory


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class S3StorageAdapter:
    """
    Blob storage in one S3 bucket.

    Keys are object keys, validated before any request is built. Reads are
    bounded by ``read_timeout`` seconds; a timeout or a network failure is
    raised as TransientStorageError.
    """

    def __init__(
        self,
        bucket: str,
        client_factory: Optional[ClientFactory] = None,
        read_timeout: float = 30.0,
        chunk_size: int = CHUNK_SIZE,
    ):
        self.bucket = bucket
        self.read_timeout = read_timeout
        self.chunk_size = chunk_size
        self._client_factory = client_factory or session_client_factory()
        self._logger = get_logger("storage.s3")

    def _map_error(self, error: Exception, key: str, action: str) -> Exception:
        if isinstance(error, ClientError):
            if _error_code(error) in NOT_FOUND_CODES:
                return NotFoundError(key)
            return StorageError(f"S3 {action} failed for {key}: {error}")
        if isinstance(error, (asyncio.TimeoutError, *NETWORK_ERRORS)):
            return TransientStorageError(f"S3 {action} failed for {key}: {error!r}")
        return StorageError(f"S3 {action} failed for {key}: {error}")

    async def save_file(self, key: str, data: bytes, content_type: str) -> None:
        validate_key(key)
        try:
            async with self._client_factory() as client:
                await client.put_object(
                    Bucket=self.bucket, Key=key, Body=data, ContentType=content_type
                )
        except (ClientError, *NETWORK_ERRORS) as e:
            raise self._map_error(e, key, "put") from e
        self._logger.debug(f"Saved s3://{self.bucket}/{key} ({len(data)} bytes)")

    async def get_file(self, key: str) -> bytes:
        validate_key(key)

        async def read() -> bytes:
            async with self._client_factory() as client:
                response = await client.get_object(Bucket=self.bucket, Key=key)
                async with response["Body"] as stream:
                    return await stream.read()

        try:
            return await asyncio.wait_for(read(), timeout=self.read_timeout)
        except (ClientError, asyncio.TimeoutError, *NETWORK_ERRORS) as e:
            raise self._map_error(e, key, "get") from e

    async def get_file_stream(self, key: str) -> AsyncIterator[bytes]:
        validate_key(key)
        stack = AsyncExitStack()
        try:
            client = await stack.enter_async_context(self._client_factory())
            response = await asyncio.wait_for(
                client.get_object(Bucket=self.bucket, Key=key), timeout=self.read_timeout
            )
        except (ClientError, asyncio.TimeoutError, *NETWORK_ERRORS) as e:
            await stack.aclose()
            raise self._map_error(e, key, "get") from e
        except BaseException:
            await stack.aclose()
            raise
        return self._iter_body(stack, response["Body"], key)

    async def _iter_body(self, stack: AsyncExitStack, body: Any, key: str) -> AsyncIterator[bytes]:
        try:
            async for chunk in body.iter_chunks(self.chunk_size):
                yield chunk
        except (ClientError, *NETWORK_ERRORS) as e:
            raise self._map_error(e, key, "stream") from e
        finally:
            body.close()
            await stack.aclose()

    async def _list_keys(self, client: Any, prefix: str) -> List[str]:
        directory = normalize_prefix(prefix)
        exact = directory.rstrip("/")
        keys: List[str] = []
        paginator = client.get_paginator("list_objects_v2")
        async for page in paginator.paginate(Bucket=self.bucket, Prefix=exact):
            for obj in page.get("Contents", []):
                object_key = obj["Key"]
                if object_key.endswith("/"):
                    continue
                if not directory or object_key == exact or object_key.startswith(directory):
                    keys.append(object_key)
        return sorted(keys)

    async def delete_files(self, prefix: str) -> None:
        try:
            async with self._client_factory() as client:
                keys = await self._list_keys(client, prefix)
                for start in range(0, len(keys), DELETE_BATCH_SIZE):
                    batch = keys[start:start + DELETE_BATCH_SIZE]
                    await client.delete_objects(
                        Bucket=self.bucket,
                        Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
                    )
        except (ClientError, *NETWORK_ERRORS) as e:
            raise self._map_error(e, prefix, "delete") from e
        if keys:
            self._logger.debug(f"Deleted {len(keys)} object(s) under s3://{self.bucket}/{prefix}")

    async def file_exists(self, key: str) -> bool:
        validate_key(key)
        try:
            async with self._client_factory() as client:
                await client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return False
            raise self._map_error(e, key, "head") from e
        except NETWORK_ERRORS as e:
            raise self._map_error(e, key, "head") from e

    async def list_files(self, prefix: str) -> List[str]:
        try:
            async with self._client_factory() as client:
                return await self._list_keys(client, prefix)
        except (ClientError, *NETWORK_ERRORS) as e:
            raise self._map_error(e, prefix, "list") from e
