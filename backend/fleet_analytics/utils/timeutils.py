"""
Timestamp parsing and duration formatting.

Provider feeds deliver timestamps as datetimes, epoch numbers (seconds or
milliseconds) or ISO-8601 text. Everything is converted to timezone-aware
UTC datetimes; naive values are treated as UTC.
"""

import math
from datetime import date, datetime, timezone, tzinfo
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import numpy as np
import pandas as pd


# Epoch values above this are milliseconds (year 5138 in seconds)
EPOCH_MS_THRESHOLD = 1.0e11


def tzinfo_from_name(tz_name: str) -> tzinfo:
    """
    Create tzinfo from an IANA timezone name.

    Raises:
        ValueError: If the timezone name is unknown on this system.
    """
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {tz_name!r}") from exc


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a provider timestamp into an aware UTC datetime.

    Returns:
        The parsed datetime, or None when the value cannot be parsed.
    """
    if value is None or value is pd.NaT:
        return None

    if isinstance(value, pd.Timestamp):
        if pd.isna(value):
            return None
        value = value.to_pydatetime()

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    if isinstance(value, (int, float, np.integer, np.floating)) and not isinstance(value, bool):
        number = float(value)
        if not math.isfinite(number):
            return None
        if abs(number) > EPOCH_MS_THRESHOLD:
            number = number / 1000.0
        try:
            return datetime.fromtimestamp(number, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return parse_timestamp(float(text))
        except ValueError:
            pass
        try:
            return parse_timestamp(pd.Timestamp(text))
        except (ValueError, TypeError):
            return None

    return None


def to_local(dt: datetime, tz: tzinfo) -> datetime:
    """Convert an aware datetime to the given timezone."""
    return dt.astimezone(tz)


def local_day_bounds(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """UTC bounds [start, end) of a local calendar day."""
    start = datetime(day.year, day.month, day.day, tzinfo=tz)
    next_day = date.fromordinal(day.toordinal() + 1)
    end = datetime(next_day.year, next_day.month, next_day.day, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def format_duration(seconds: float) -> str:
    """
    Human readable duration: "45s", "12m", "2h", "2h 5m".
    """
    total = int(seconds)
    if total < 60:
        return f"{max(total, 0)}s"

    hours = total // 3600
    minutes = (total % 3600) // 60

    if hours > 0:
        return f"{hours}h {minutes}m" if minutes > 0 else f"{hours}h"
    return f"{minutes}m"
