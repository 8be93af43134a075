"""Timestamp utilities for fastsync.

All instants are stored as integer epoch milliseconds, both locally and on
the wire. These helpers convert them for display and for calendar days.
"""

from datetime import date, datetime, timezone
from typing import Optional


def format_timestamp(ms: Optional[int]) -> str:
    """Format epoch milliseconds in the local timezone for display.

    Args:
        ms: Milliseconds since epoch, or None

    Returns:
        Formatted string "YYYY-MM-DD HH:MM:SS" in local timezone,
        or empty string if ms is None
    """
    if ms is None:
        return ""
    utc_dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    local_dt = utc_dt.astimezone()
    return local_dt.strftime("%Y-%m-%d %H:%M:%S")


def today() -> str:
    """Today's local calendar day as YYYY-MM-DD."""
    return date.today().isoformat()


def current_timestamp_ms() -> int:
    """Get current time as epoch milliseconds."""
    return int(datetime.now(tz=timezone.utc).timestamp() * 1000)
