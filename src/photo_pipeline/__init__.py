"""Photo derivative pipeline."""

__version__ = "0.1.0"
