"""Timestamp helpers shared by every store."""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def to_db_time(value: datetime) -> str:
    """
    Render a datetime as fixed-width ISO-8601 UTC text.

    Naive datetimes are taken to be UTC. The fixed width keeps string
    comparison equal to time comparison.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    """Parse text written by to_db_time (or any ISO-8601 string)."""
    if value is None:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
