"""
Delivery window resolution.

Two entry points:
- clamp_date_range: bounds a caller-supplied window before it reaches the
  warehouse (end never later than business-yesterday unless the whole window
  is already in the past; look-back capped at max_range_days)
- resolve_preset_window: turns a named preset into a concrete window
"""

import logging
from datetime import date, timedelta
from typing import Iterable, Optional

from pacing_engine.core.errors import ValidationError
from pacing_engine.models import Burst, DateWindow, DateWindowPreset
from pacing_engine.services.schedule import burst_bounds

logger = logging.getLogger(__name__)

DEFAULT_MAX_RANGE_DAYS: int = 180

PRESET_DAYS = {
    DateWindowPreset.LAST_30: 30,
    DateWindowPreset.LAST_60: 60,
    DateWindowPreset.LAST_90: 90,
}


def last_n_days_window(end: date, days: int) -> DateWindow:
    """Window of `days` calendar days ending on `end` (inclusive)."""
    return DateWindow(startDate=end - timedelta(days=max(days, 1) - 1), endDate=end)


def clamp_date_range(
    start: Optional[date],
    end: Optional[date],
    today: date,
    max_range_days: int = DEFAULT_MAX_RANGE_DAYS,
) -> DateWindow:
    """
    Bound a requested delivery window.

    - end: the requested end when it is before today (completed flights),
      otherwise business-yesterday (today's data is partial)
    - start: the requested start when it is no earlier than
      end - max_range_days, otherwise end - max_range_days

    The result may have start > end when the requested start is in the future;
    callers treat that as an empty window.

    Args:
        start: Requested start or None.
        end: Requested end or None.
        today: Business-timezone today.
        max_range_days: Look-back cap.

    Returns:
        DateWindow
    """
    yesterday = today - timedelta(days=1)
    final_end = end if end is not None and end < today else yesterday
    earliest = final_end - timedelta(days=max_range_days)
    final_start = start if start is not None and start >= earliest else earliest
    return DateWindow(startDate=final_start, endDate=final_end)


def resolve_preset_window(
    preset: DateWindowPreset,
    today: date,
    bursts: Optional[Iterable[Burst]] = None,
) -> DateWindow:
    """
    Concrete window for a named preset. Every preset ends at business-yesterday.

    CAMPAIGN_DATES spans the earliest burst start to the latest burst end
    (end capped at yesterday); without bursts it falls back to LAST_60.

    Raises:
        ValidationError: For an unknown preset value.
    """
    try:
        preset = DateWindowPreset(preset)
    except ValueError:
        raise ValidationError(f"Unknown date window preset: {preset}", field='preset')

    yesterday = today - timedelta(days=1)

    if preset in PRESET_DAYS:
        return last_n_days_window(yesterday, PRESET_DAYS[preset])

    fallback = last_n_days_window(yesterday, PRESET_DAYS[DateWindowPreset.LAST_60])
    bounds = burst_bounds(bursts or [])
    if bounds is None:
        return fallback

    start, end = bounds
    end = min(end, yesterday)
    if start > end:
        # Campaign has not started yet; nothing delivered
        return DateWindow(startDate=start, endDate=start)
    return DateWindow(startDate=start, endDate=end)
