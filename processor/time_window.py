"""Relative-time buckets used for filtering and "starting soon" feeds."""
import math
from datetime import date, datetime, time, timedelta
from typing import Optional

PAST = 'past'
NOW = 'now'
NEXT_HOUR = 'next-hour'
NEXT_3_HOURS = 'next-3-hours'
TONIGHT = 'tonight'
WEEKEND = 'weekend'
FUTURE = 'future'

# Events without an explicit start time are assumed to start at 19:00
DEFAULT_EVENT_TIME = time(19, 0)

NOW_WINDOW_MINUTES = 30
TONIGHT_START = time(17, 0)
TONIGHT_END = time(1, 0)
WEEKEND_LOOKAHEAD_DAYS = 3


def resolve_start(start_date: Optional[str], start_time: Optional[str] = None) -> Optional[datetime]:
    """
    Resolve the comparable start instant of an event.

    Args:
        start_date: ISO 8601 date (YYYY-MM-DD)
        start_time: 24-hour time (HH:MM), optional

    Returns:
        Naive datetime, or None if the date cannot be parsed
    """
    if not start_date:
        return None
    try:
        day = date.fromisoformat(start_date)
    except ValueError:
        return None

    start = DEFAULT_EVENT_TIME
    if start_time:
        try:
            start = datetime.strptime(start_time, '%H:%M').time()
        except ValueError:
            pass
    return datetime.combine(day, start)


def minutes_until(start: datetime, now: datetime) -> int:
    """Whole minutes from now until start, negative once started."""
    return math.floor((start - now).total_seconds() / 60)


def _is_tonight(start: datetime, now: datetime) -> bool:
    span_start = datetime.combine(now.date(), TONIGHT_START)
    span_end = datetime.combine(now.date() + timedelta(days=1), TONIGHT_END)
    return span_start <= start <= span_end


def _is_weekend_soon(start: datetime, minutes: int) -> bool:
    return start.weekday() >= 5 and 0 <= minutes // 1440 <= WEEKEND_LOOKAHEAD_DAYS


def classify(start: datetime, now: datetime) -> str:
    """
    Bucket an event start relative to now.

    Buckets are checked in order: past, now (within 30 minutes either way),
    next-hour, next-3-hours, tonight (today 17:00 to tomorrow 01:00),
    weekend (Saturday or Sunday within the next three days), future.
    """
    minutes = minutes_until(start, now)

    if minutes < -NOW_WINDOW_MINUTES:
        return PAST
    if minutes <= NOW_WINDOW_MINUTES:
        return NOW
    if minutes <= 60:
        return NEXT_HOUR
    if minutes <= 180:
        return NEXT_3_HOURS
    if _is_tonight(start, now):
        return TONIGHT
    if _is_weekend_soon(start, minutes):
        return WEEKEND
    return FUTURE


def in_window(start: datetime, now: datetime, window: str) -> bool:
    """
    Filter predicate for a named window.

    Unlike classify, windows overlap: an event 40 minutes away is both
    in next-hour and in next-3-hours.
    """
    minutes = minutes_until(start, now)

    if window == PAST:
        return minutes < -NOW_WINDOW_MINUTES
    if window == NOW:
        return -NOW_WINDOW_MINUTES <= minutes <= NOW_WINDOW_MINUTES
    if window == NEXT_HOUR:
        return 0 <= minutes <= 60
    if window == NEXT_3_HOURS:
        return 0 <= minutes <= 180
    if window == TONIGHT:
        return minutes >= -NOW_WINDOW_MINUTES and _is_tonight(start, now)
    if window == WEEKEND:
        return _is_weekend_soon(start, minutes)
    if window == FUTURE:
        return minutes > NOW_WINDOW_MINUTES
    raise ValueError(f"Unknown time window: {window}")
