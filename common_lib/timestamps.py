"""Timestamp utilities for feed query windows and stored records."""

from datetime import datetime, timezone
from typing import Any, Optional

from .logger import get_logger

logger = get_logger(__name__)


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_feed_timestamp(value: datetime) -> str:
    """
    Format a datetime the way the NVD API expects window bounds.

    Naive values are treated as UTC. Output looks like
    ``2024-01-15T10:15:07.577Z`` (millisecond precision, Z suffix).
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_feed_timestamp(value: Any) -> Optional[datetime]:
    """
    Convert a feed timestamp to an aware UTC datetime.

    The feed sends naive ISO strings such as ``2024-01-15T10:15:07.577``
    which are UTC. Returns None for missing or unparseable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.warning("Invalid feed timestamp encountered: %s", value)
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    logger.warning("Unsupported feed timestamp type: %s", type(value).__name__)
    return None
