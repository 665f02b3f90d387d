"""
Report Time Utilities

Time range resolution and calendar bucketing for reports. Every day and month
key is computed in Iraq civil time (a fixed UTC+3 offset) so two requests over
the same data bucket identically whatever the host's locale or time zone.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

import pandas as pd

logger = logging.getLogger(__name__)

# Iraq civil time; no daylight saving since 2008
CIVIL_OFFSET = timedelta(hours=3)
CIVIL_TZ = timezone(CIVIL_OFFSET, name="AST")

# Reserved bucket for missing or unparseable timestamps
UNKNOWN_KEY = "unknown"

# Range token -> calendar-aware offset subtracted from "now"
RANGE_OFFSETS = {
    'week': pd.DateOffset(days=7),
    'month': pd.DateOffset(months=1),
    'quarter': pd.DateOffset(months=3),
    'year': pd.DateOffset(years=1),
}

Timestamp = Union[datetime, str, None]


def to_utc(value: Timestamp) -> Optional[datetime]:
    """
    Normalize a timestamp to an aware UTC datetime.

    Naive datetimes are taken to be UTC. Strings are parsed as ISO-8601.
    Returns None for missing or unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            value = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_civil(value: Timestamp) -> Optional[datetime]:
    """Shift a timestamp into civil time"""
    instant = to_utc(value)
    if instant is None:
        return None
    return instant.astimezone(CIVIL_TZ)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def day_key(value: Timestamp) -> str:
    """Civil calendar day of a timestamp as 'YYYY-MM-DD', or 'unknown'"""
    civil = to_civil(value)
    if civil is None:
        return UNKNOWN_KEY
    return civil.strftime("%Y-%m-%d")


def month_key(value: Timestamp) -> str:
    """Civil calendar month of a timestamp as 'YYYY-MM', or 'unknown'"""
    civil = to_civil(value)
    if civil is None:
        return UNKNOWN_KEY
    return civil.strftime("%Y-%m")


def today_key(now: Optional[datetime] = None) -> str:
    """Civil day key of 'now'"""
    return day_key(now or now_utc())


def resolve_start_date(time_range: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Map a range token to an inclusive lower bound.

    'all' (and anything unrecognized) means no bound. 'week' is seven days back;
    'month', 'quarter' and 'year' step back by calendar months and years, so
    31 March minus one month is 28/29 February rather than 3 March.
    """
    if not time_range or time_range == 'all':
        return None

    offset = RANGE_OFFSETS.get(time_range)
    if offset is None:
        logger.warning(f"Unknown time range '{time_range}', treating as 'all'")
        return None

    anchor = to_utc(now) if now is not None else now_utc()
    return (pd.Timestamp(anchor) - offset).to_pydatetime()


def is_on_or_after(value: Timestamp, start: Optional[datetime]) -> bool:
    """True when there is no lower bound or the timestamp falls on/after it"""
    if start is None:
        return True
    instant = to_utc(value)
    if instant is None:
        return False
    return instant >= to_utc(start)
