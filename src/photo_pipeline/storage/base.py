"""Key layout and validation shared by every storage backend."""

import re
from typing import List, Optional

from ..core.exceptions import InvalidKeyError
from ..core.protocols import StorageAdapter

ORIGINALS_PREFIX = "originals"
PROCESSED_PREFIX = "processed"
PHOTO_NAMESPACES = (ORIGINALS_PREFIX, PROCESSED_PREFIX)

UUID_V4_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_valid_photo_id(photo_id: str) -> bool:
    return bool(UUID_V4_PATTERN.fullmatch(photo_id))


def _check_segments(value: str, what: str) -> List[str]:
    if "\\" in value or "\x00" in value:
        raise InvalidKeyError(f"Invalid {what}: {value!r}")
    if value.startswith("/"):
        raise InvalidKeyError(f"Absolute {what} not allowed: {value!r}")
    segments = value.split("/")
    for segment in segments:
        if segment in ("", ".", ".."):
            raise InvalidKeyError(f"Invalid {what}: {value!r}")
    return segments


def _check_photo_namespace(segments: List[str], value: str) -> None:
    if segments[0] in PHOTO_NAMESPACES and len(segments) > 1:
        if not is_valid_photo_id(segments[1]):
            raise InvalidKeyError(f"Invalid photo id in key: {value!r}")


def validate_key(key: str) -> str:
    """
    Validate a storage key and return it unchanged.

    Keys are relative, ``/``-separated paths with no empty, ``.`` or ``..``
    segments. Under ``originals/`` and ``processed/`` the second segment
    must be a UUID v4 photo id.

    Raises:
        InvalidKeyError: If the key is malformed
    """
    if not isinstance(key, str) or not key:
        raise InvalidKeyError("Storage key must be a non-empty string")
    segments = _check_segments(key, "key")
    _check_photo_namespace(segments, key)
    return key


def normalize_prefix(prefix: str) -> str:
    """
    Turn a prefix into a directory prefix ending in ``/``.

    The empty prefix stays empty and means the whole store.
    """
    if prefix is None:
        raise InvalidKeyError("Prefix must be a string")
    stripped = prefix.rstrip("/")
    if not stripped:
        if prefix:
            raise InvalidKeyError(f"Invalid prefix: {prefix!r}")
        return ""
    segments = _check_segments(stripped, "prefix")
    _check_photo_namespace(segments, stripped)
    return f"{stripped}/"


def original_key(photo_id: str, extension: str) -> str:
    """``originals/{photoId}/original.{ext}``"""
    return validate_key(f"{ORIGINALS_PREFIX}/{photo_id}/original.{extension.lstrip('.').lower()}")


def derivative_key(photo_id: str, filename: str) -> str:
    """``processed/{photoId}/{filename}``"""
    return validate_key(f"{PROCESSED_PREFIX}/{photo_id}/{filename}")


async def find_original_key(storage: StorageAdapter, photo_id: str) -> Optional[str]:
    """Locate the uploaded original of a photo, whatever its extension."""
    for key in await storage.list_files(f"{ORIGINALS_PREFIX}/{photo_id}"):
        if key.rsplit("/", 1)[-1].startswith("original."):
            return key
    return None


async def delete_photo_files(storage: StorageAdapter, photo_id: str) -> None:
    """Remove the original and every derivative of a photo."""
    for namespace in PHOTO_NAMESPACES:
        await storage.delete_files(f"{namespace}/{photo_id}")
