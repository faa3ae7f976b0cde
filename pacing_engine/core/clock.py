"""
Business calendar helpers.

All "today"/"yesterday" computations happen in the configured business
timezone so that every module agrees on where a calendar day starts. Nothing
else in the engine reads the wall clock.
"""

from datetime import date, datetime, timedelta
from typing import Any, Optional

import pandas as pd
import pytz

from pacing_engine.core.config import get_settings


def business_tz(tz_name: Optional[str] = None) -> pytz.BaseTzInfo:
    """Resolve the business timezone (defaults to settings.business_timezone)."""
    return pytz.timezone(tz_name or get_settings().business_timezone)


def business_now(now: Optional[datetime] = None, tz_name: Optional[str] = None) -> datetime:
    """
    Current instant expressed in the business timezone.

    Args:
        now: Optional reference instant. Naive values are taken as UTC.
        tz_name: Optional timezone override.
    """
    tz = business_tz(tz_name)
    if now is None:
        return datetime.now(tz)
    if now.tzinfo is None:
        now = pytz.utc.localize(now)
    return now.astimezone(tz)


def business_today(now: Optional[datetime] = None, tz_name: Optional[str] = None) -> date:
    return business_now(now, tz_name).date()


def business_yesterday(now: Optional[datetime] = None, tz_name: Optional[str] = None) -> date:
    # Calendar arithmetic on the local date, so DST transitions never skip a day
    return business_today(now, tz_name) - timedelta(days=1)


def to_business_date(value: Any, tz_name: Optional[str] = None) -> Optional[date]:
    """
    Coerce a loosely-typed value to a calendar date.

    Accepts date, datetime, pandas Timestamp and ISO-like strings. Plain
    'YYYY-MM-DD' values are taken as calendar dates; timezone-aware
    timestamps are first converted into the business timezone.

    Args:
        value: Raw value.
        tz_name: Optional timezone override.

    Returns:
        The calendar date, or None when the value cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(business_tz(tz_name)).date()
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, (str, pd.Timestamp)):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None

    parsed = pd.to_datetime(value, errors='coerce')
    if parsed is None or pd.isna(parsed):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.tz_convert(business_tz(tz_name))
    return parsed.date()


def inclusive_days(start: date, end: date) -> int:
    """Number of calendar days in [start, end]; 0 when end precedes start."""
    return max((end - start).days + 1, 0)
