# supportdesk/utils/datetime_utils.py
"""
Strict UTC datetime handling to prevent timezone drift.
All stored dates are naive UTC; all serialized dates are ISO with 'Z'.
"""
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as naive UTC (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_iso_string(dt: Optional[datetime]) -> Optional[str]:
    """
    Convert datetime to ISO string with UTC timezone.

    Args:
        dt: datetime object (assumed UTC if naive)

    Returns:
        ISO format string with 'Z' suffix (UTC)
    """
    if dt is None:
        return None

    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)

    return dt.isoformat() + "Z"


def parse_iso_datetime(date_str: Optional[str]) -> Optional[datetime]:
    """
    Parse ISO format date string to naive UTC datetime.

    Strings without timezone info are taken as UTC.

    Raises:
        ValueError: If format is invalid
    """
    if not date_str:
        return None

    try:
        dt = datetime.fromisoformat(date_str.strip().replace("Z", "+00:00"))
    except ValueError as e:
        raise ValueError(f"Invalid date format '{date_str}': {e}")

    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt
