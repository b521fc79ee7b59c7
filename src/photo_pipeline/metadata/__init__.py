"""Metadata store adapters."""

from .dynamodb import DynamoDBPhotoRepository

__all__ = ["DynamoDBPhotoRepository"]
