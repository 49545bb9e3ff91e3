"""
Timetoken formatting.

A timetoken is the backend's publish timestamp in 100 ns units since the
Unix epoch. Display uses the fixed en_US_POSIX short date and medium time
styles, e.g. ``4/16/20, 3:09:00 PM``.
"""

from __future__ import annotations
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional, Union

TICKS_PER_SECOND = 10_000_000

Timetoken = Union[int, str]


def _ticks(timetoken: Timetoken) -> int:
    if isinstance(timetoken, bool):
        raise ValueError(f"Invalid timetoken: {timetoken!r}")
    if isinstance(timetoken, int):
        return timetoken
    if isinstance(timetoken, str) and timetoken.isdigit():
        return int(timetoken)
    raise ValueError(f"Invalid timetoken: {timetoken!r}")


def timetoken_to_datetime(timetoken: Timetoken, tz: Optional[tzinfo] = None) -> datetime:
    """Convert to an aware datetime in ``tz`` (local time when None)."""
    seconds, ticks = divmod(_ticks(timetoken), TICKS_PER_SECOND)
    moment = datetime.fromtimestamp(seconds, tz=timezone.utc) + timedelta(microseconds=ticks // 10)
    return moment.astimezone(tz)


def format_timetoken(timetoken: Timetoken, tz: Optional[tzinfo] = None) -> str:
    moment = timetoken_to_datetime(timetoken, tz)
    hour = moment.hour % 12 or 12
    meridiem = "AM" if moment.hour < 12 else "PM"
    return (
        f"{moment.month}/{moment.day}/{moment:%y}, "
        f"{hour}:{moment:%M:%S} {meridiem}"
    )
