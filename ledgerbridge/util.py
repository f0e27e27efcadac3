"""Utility functions shared by the client and the proxy."""

import logging
from datetime import datetime, timezone
from time import time_ns
from typing import Optional


def setup_logging(
    name: str,
    level: str = "INFO",
    format_str: Optional[str] = None,
) -> logging.Logger:
    """
    Set up structured logging for a component.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_str: Optional custom format string

    Returns:
        Configured logger
    """
    if format_str is None:
        format_str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=format_str,
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    return logging.getLogger(name)


def now_ms() -> int:
    """Wall clock time in milliseconds."""
    return time_ns() // 1_000_000


def iso_now() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def truncate(text: str, limit: int = 500) -> str:
    """Clip text for logs and diagnostic payloads."""
    return text if len(text) <= limit else text[:limit]
