"""Clock helpers (naive UTC, matching the DateTime columns)."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
