"""Utility modules for the web tester.

Provides:
- Structured logging configuration
- Identifier, timestamp and origin helpers
"""

from .helpers import format_timestamp, generate_id, origin_of
from .logging import configure_logging, get_logger

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    # Helpers
    "format_timestamp",
    "generate_id",
    "origin_of",
]
