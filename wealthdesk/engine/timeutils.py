"""
Timestamp helpers.

Rules:
- Every timestamp handled by the engine is a tz-aware UTC `datetime`.
- Date-only strings ('2030-09-01') are midnight UTC.
- Callers may pass `now` explicitly; otherwise the wall clock is used.
"""

from datetime import datetime, timezone
from typing import Optional, Union

import pandas as pd

SECONDS_PER_DAY = 60 * 60 * 24


def utcnow(now: Optional[datetime] = None) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def parse_date(value: Union[str, datetime]) -> datetime:
    """Parse an ISO date/datetime string into a tz-aware UTC datetime."""
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    else:
        ts = ts.tz_convert("UTC")
    return ts.to_pydatetime()


def days_between(start: Union[str, datetime], end: Union[str, datetime]) -> float:
    """Fractional days from `start` to `end` (negative if end is earlier)."""
    return (parse_date(end) - parse_date(start)).total_seconds() / SECONDS_PER_DAY


def add_months(when: datetime, months: int) -> datetime:
    """Calendar month arithmetic; day-of-month is clipped to the target month."""
    return (pd.Timestamp(when) + pd.DateOffset(months=months)).to_pydatetime()


def isoformat(when: datetime) -> str:
    return utcnow(when).isoformat()


def calendar_months_between(start: Union[str, datetime], end: Union[str, datetime]) -> int:
    """Whole calendar months from `start` to `end`, truncated toward zero."""
    a, b = parse_date(start), parse_date(end)
    sign = 1
    if b < a:
        a, b, sign = b, a, -1
    months = (b.year - a.year) * 12 + (b.month - a.month)
    if (b.day, b.time()) < (a.day, a.time()):
        months -= 1
    return sign * months


def display_date(value: Union[str, datetime]) -> str:
    """US short date, e.g. '9/1/2030'."""
    d = parse_date(value)
    return f"{d.month}/{d.day}/{d.year}"
