"""
Wall-clock time helpers.

Persisted timestamps are always ISO8601 strings in UTC. Comparisons happen
on aware datetimes only.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current wall-clock time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(ts: Optional[datetime]) -> Optional[str]:
    """
    Format a timestamp for persistence.

    Args:
        ts: Aware or naive datetime; naive values are taken as UTC

    Returns:
        ISO8601 string, or None when ts is None
    """
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a persisted ISO8601 timestamp.

    Args:
        value: ISO8601 string, or None

    Returns:
        Aware UTC datetime, or None when value is empty
    """
    if not value:
        return None
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def add_seconds(start: datetime, seconds: float) -> datetime:
    """Return start shifted forward by seconds."""
    return start + timedelta(seconds=seconds)


def seconds_until(target: datetime, now: Optional[datetime] = None) -> float:
    """
    Seconds remaining until target, never negative.

    Args:
        target: Point in time to wait for
        now: Reference time, defaults to the current wall clock

    Returns:
        Remaining seconds, 0.0 once target has passed
    """
    if now is None:
        now = utc_now()
    return max(0.0, (target - now).total_seconds())


def time_elapsed_seconds(start_time: datetime, end_time: Optional[datetime] = None) -> float:
    """Elapsed seconds between two timestamps, end defaulting to now."""
    if end_time is None:
        end_time = utc_now()

    return (end_time - start_time).total_seconds()
