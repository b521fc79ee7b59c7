# src/photo_pipeline/core/error_handling.py

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Dict, List

from PIL import UnidentifiedImageError as PILUnidentifiedImageError

from .exceptions import MetadataUpdateError, PhotoPipelineError, ProcessingError


def with_error_handling(func):
    """
    A decorator to wrap functions with standardized error handling.

    Pipeline errors are logged and re-raised unchanged; anything else is
    re-raised as ProcessingError chained to the original exception.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger(func.__module__ + '.' + func.__name__)
        try:
            return func(*args, **kwargs)
        except PhotoPipelineError as e:
            logger.error(f"Error in '{func.__name__}': {e}", exc_info=True)
            raise
        except PILUnidentifiedImageError as e:
            logger.error(f"Error in '{func.__name__}': {e}", exc_info=True)
            raise ProcessingError(f"Failed to identify image in {func.__name__}: {e}") from e
        except Exception as e:
            logger.error(f"Error in '{func.__name__}': {e}", exc_info=True)
            raise ProcessingError(f"Image processing failed in {func.__name__}: {e}") from e
    return wrapper


def retry_metadata_update(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
):
    """
    Decorator to retry an async metadata-store write with linear backoff.

    The n-th failed attempt waits ``base_delay * n`` seconds before the next
    one. Once every attempt has failed, MetadataUpdateError is raised from
    the last underlying error.
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            logger = logging.getLogger(func.__module__ + '.' + func.__name__)
            last_error = None
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    last_error = e
                    logger.warning(
                        f"Metadata update '{func.__name__}' failed. "
                        f"Attempt {attempt}/{max_attempts}. Error: {e}"
                    )
                    if attempt < max_attempts:
                        await sleep(base_delay * attempt)
            raise MetadataUpdateError(
                f"Metadata update '{func.__name__}' failed after {max_attempts} attempts: {last_error}"
            ) from last_error
        return wrapper
    return decorator


class BatchOperationContextManager:
    """
    Context manager for batch operations to collect and summarize errors.
    """
    def __init__(self, operation_name="Batch Operation"):
        self.operation_name = operation_name
        self.errors: List[Dict[str, str]] = []
        self.logger = logging.getLogger(self.__class__.__module__ + '.' + self.__class__.__name__)

    def __enter__(self):
        self.logger.info(f"Starting {self.operation_name}.")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.errors:
            self.logger.warning(
                f"{self.operation_name} completed with {len(self.errors)} error(s)."
            )
            for i, error_detail in enumerate(self.errors):
                self.logger.error(
                    f"  Error {i+1}/{len(self.errors)} for item '{error_detail['item']}': {error_detail['error']}"
                )
        elif exc_type:
            self.logger.error(
                f"{self.operation_name} failed due to an unhandled exception: {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb)
            )
        else:
            self.logger.info(f"{self.operation_name} completed successfully.")
        return False

    def add_error(self, error_message: str, item_identifier: str = "Unknown item"):
        """
        Report an error for a specific item within the 'with' block.

        Args:
            error_message (str): The error message or exception string.
            item_identifier (str): A string identifying the item that failed (e.g., message id).
        """
        self.errors.append({"item": item_identifier, "error": str(error_message)})
        self.logger.debug(f"Error added for item '{item_identifier}' in {self.operation_name}: {error_message}")

    @property
    def failed_items(self) -> List[str]:
        """Identifiers of failed items, in the order they were reported."""
        return [error["item"] for error in self.errors]
