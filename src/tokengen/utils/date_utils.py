"""Date and time utilities for token expiry handling."""

from datetime import datetime, timedelta
from typing import Optional, Union

import pytz


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(pytz.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Ensure datetime is in UTC.

    Args:
        dt: Datetime to convert

    Returns:
        UTC datetime
    """
    if dt.tzinfo is None:
        return pytz.utc.localize(dt)
    return dt.astimezone(pytz.utc)


def from_timestamp(value: Union[int, float, str, None]) -> Optional[datetime]:
    """
    Convert a POSIX timestamp (as sent in ``exp`` claims) to UTC.

    Returns None for missing or unparseable values.
    """
    if value is None or value == "":
        return None
    try:
        return datetime.fromtimestamp(float(value), tz=pytz.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def expires_after(now: datetime, seconds: Union[int, float, str, None]) -> Optional[datetime]:
    """Absolute expiry for a relative ``expires_in`` value."""
    if seconds is None or seconds == "":
        return None
    try:
        return ensure_utc(now) + timedelta(seconds=float(seconds))
    except (TypeError, ValueError, OverflowError):
        return None
