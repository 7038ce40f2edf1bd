"""
Centralized timezone management.
Dashboard timestamps are stored and compared in UTC.
"""

from datetime import date, datetime, time, timezone as dt_timezone
from typing import Tuple, Union

UTC = dt_timezone.utc


def get_utc_now() -> datetime:
    """
    Get current datetime in UTC (timezone-aware).

    Example:
        >>> now = get_utc_now()
        >>> print(now.tzinfo)
        UTC
    """
    return datetime.now(tz=UTC)


def as_utc(dt: datetime) -> datetime:
    """
    Normalise a datetime to timezone-aware UTC.

    MongoDB hands datetimes back naive (they are stored as UTC), so a naive
    value is taken to already be UTC.

    Example:
        >>> as_utc(datetime(2024, 1, 15, 8, 0)).isoformat()
        '2024-01-15T08:00:00+00:00'
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def utc_day_bounds(day: Union[date, datetime]) -> Tuple[datetime, datetime]:
    """
    Inclusive start and end of the UTC calendar day containing `day`.

    Args:
        day: a date, or a datetime (converted to UTC first)

    Returns:
        (00:00:00.000000, 23:59:59.999999) of that day, both UTC-aware
    """
    if isinstance(day, datetime):
        day = as_utc(day).date()
    start = datetime.combine(day, time.min, tzinfo=UTC)
    end = datetime.combine(day, time.max, tzinfo=UTC)
    return start, end


def is_within_utc_day(value: datetime, day: Union[date, datetime]) -> bool:
    start, end = utc_day_bounds(day)
    return start <= as_utc(value) <= end
