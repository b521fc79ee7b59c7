"""Logging setup for the photo pipeline, driven by PipelineSettings."""

import sys
import logging
from typing import Optional

from .config import LOG_LEVELS, PipelineSettings

ROOT_LOGGER_NAME = "photo-pipeline"

FORMAT_STRINGS = {
    "structured": (
        "%(asctime)s | %(name)s | %(levelname)-8s | "
        "%(filename)s:%(lineno)d | %(funcName)s() | %(message)s"
    ),
    "simple": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}


def qualified_name(name: str) -> str:
    """Place a component name under the ``photo-pipeline`` namespace."""
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return name
    return f"{ROOT_LOGGER_NAME}.{name}"


def resolve_level(level: str) -> int:
    level = level.upper()
    return getattr(logging, level) if level in LOG_LEVELS else logging.INFO


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: Optional[str] = None,
    format_type: Optional[str] = None,
    settings: Optional[PipelineSettings] = None,
) -> logging.Logger:
    """
    Configure a pipeline logger.

    Level and format default to ``log_level``/``log_format`` from
    PipelineSettings (``PHOTO_PIPELINE_LOG_LEVEL`` or ``LOG_LEVEL``, and
    likewise for the format). An unknown level falls back to INFO. The
    handler writes to stdout and is attached once per logger; records do not
    propagate to the root logger.

    Args:
        name: Component name, qualified under ``photo-pipeline``
        level: Level override
        format_type: ``"structured"`` or ``"simple"`` override
        settings: Settings to read defaults from (loaded from the environment if omitted)

    Returns:
        Configured logger instance
    """
    if level is None or format_type is None:
        settings = settings or PipelineSettings()
        level = level or settings.log_level
        format_type = format_type or settings.log_format

    logger = logging.getLogger(qualified_name(name))
    logger.setLevel(resolve_level(level))

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        fmt = FORMAT_STRINGS.get(format_type.lower(), FORMAT_STRINGS["structured"])
        handler.setFormatter(logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Get a component logger configured from the current settings."""
    return setup_logger(name)
