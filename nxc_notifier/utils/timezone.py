"""Timezone conversion utilities"""
from datetime import datetime
from typing import Optional
import pytz


def to_utc(dt: datetime, tz: Optional[str] = None) -> datetime:
    """
    Convert a datetime to naive UTC.

    Args:
        dt: Datetime object (naive or timezone-aware)
        tz: Optional timezone string (e.g., 'Asia/Manila')
            If provided and dt is naive, dt is assumed to be in that timezone

    Returns:
        Naive datetime object in UTC
    """
    if dt.tzinfo is None:
        if tz:
            tz_obj = pytz.timezone(tz)
            dt = tz_obj.localize(dt)
        else:
            dt = pytz.UTC.localize(dt)

    return dt.astimezone(pytz.UTC).replace(tzinfo=None)


def parse_timestamp(value: str, tz: Optional[str] = None) -> datetime:
    """
    Parse an ISO-8601 timestamp written by the dashboard into naive UTC.

    Start times come from browsers and seed scripts, so both '2026-01-01T10:00:00Z'
    and '2026-01-01T18:00:00+08:00' show up next to plain naive values.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_utc(datetime.fromisoformat(text), tz)


def now_utc() -> datetime:
    """Get current UTC time as naive datetime"""
    return datetime.now(pytz.UTC).replace(tzinfo=None)
