"""
Time bucketing policy shared by every aggregation view.

Hourly buckets are used when the requested range spans at most
HOURLY_THRESHOLD_DAYS (rounded up), daily buckets otherwise.
"""

import re
from datetime import datetime, timedelta, tzinfo
from math import ceil
from typing import Optional

from models import HOURLY_THRESHOLD_DAYS

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")

MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
DAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


def range_days(range_start: datetime, range_end: datetime) -> int:
    return ceil((range_end - range_start) / timedelta(days=1))


def is_hourly_range(range_start: datetime, range_end: datetime) -> bool:
    return range_days(range_start, range_end) <= HOURLY_THRESHOLD_DAYS


def to_local(timestamp: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Convert aware timestamps into ``tz``; naive ones are taken as already local"""
    if tz is None or timestamp.tzinfo is None:
        return timestamp
    return timestamp.astimezone(tz)


def bucket_label(timestamp: datetime, hourly: bool) -> str:
    """'Jan 1, 10 AM' for hourly buckets, 'Jan 1' for daily ones"""
    date_part = f"{MONTH_NAMES[timestamp.month - 1]} {timestamp.day}"
    if not hourly:
        return date_part
    hour = timestamp.hour % 12 or 12
    meridiem = "AM" if timestamp.hour < 12 else "PM"
    return f"{date_part}, {hour} {meridiem}"


def day_label(day: datetime) -> str:
    """'Mon 1/1' style label used by the day-wise overlay"""
    return f"{DAY_NAMES[day.weekday()]} {day.day}/{day.month}"


def sanitize_event_key(event_name: str) -> str:
    return _NON_ALNUM.sub("_", event_name)


def sort_key(timestamp: datetime) -> float:
    """Epoch seconds; keeps ordering well-defined for naive and aware timestamps"""
    return timestamp.timestamp()
