"""
Expected-to-date Calculator

Computes how much of a booked schedule should have been delivered by an
as-of date, assuming even delivery across each period's inclusive calendar
days.

Two representations are supported:

1. Per-burst (line items):
   - bookedTotal = sum of the selected metric across all bursts
   - as_of before a burst's start contributes 0
   - as_of on/after a burst's end contributes the burst's full amount
   - otherwise amount * elapsed / total, with
     total = end - start + 1 and elapsed = as_of - start + 1 (inclusive days)

2. Month buckets (campaign delivery schedules):
   - months before the as-of month count in full, later months count 0
   - in the as-of month the denominator is the month intersected with the
     campaign start/end

In both, as_of before the campaign start yields 0 and as_of after the campaign
end yields bookedTotal. Sums use math.fsum so grouping order never changes the
result. Nothing is rounded here.
"""

import calendar
import logging
import math
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from pacing_engine.core.clock import inclusive_days
from pacing_engine.models import (
    Burst,
    ExpectedDay,
    ExpectedToDate,
    MonthBucket,
    PacingMetric,
)

logger = logging.getLogger(__name__)


def _burst_amount(burst: Burst, metric: PacingMetric) -> float:
    if metric == PacingMetric.DELIVERABLE:
        return burst.plannedDeliverable
    return burst.plannedSpend


def elapsed_fraction(start: date, end: date, as_of: date) -> float:
    """
    Share of the inclusive period [start, end] elapsed by the end of as_of.

    Returns:
        0.0 before start, 1.0 on/after end, elapsed/total in between.
    """
    if as_of < start:
        return 0.0
    if as_of >= end:
        return 1.0
    total_days = inclusive_days(start, end)
    if total_days <= 0:
        return 1.0
    elapsed_days = inclusive_days(start, as_of)
    return min(max(elapsed_days / total_days, 0.0), 1.0)


# =============================================================================
# Per-burst Variant
# =============================================================================

def compute_to_date(
    bursts: Sequence[Burst],
    as_of: date,
    metric: PacingMetric = PacingMetric.SPEND,
) -> ExpectedToDate:
    """
    Booked total and expected-to-date for a line item's bursts.

    Args:
        bursts: Normalised bursts (may overlap).
        as_of: Calendar date in the business timezone.
        metric: SPEND or DELIVERABLE.

    Returns:
        ExpectedToDate(bookedTotal, expectedToDate)

    Example:
        A 2024-01-01..2024-01-31 burst of 3100 at as_of 2024-01-11 gives
        expectedToDate = 3100 * 11 / 31 = 1100.0
    """
    if not bursts:
        return ExpectedToDate(bookedTotal=0.0, expectedToDate=0.0)

    booked_total = math.fsum(_burst_amount(b, metric) for b in bursts)
    campaign_start = min(b.startDate for b in bursts)
    campaign_end = max(b.endDate for b in bursts)

    if as_of < campaign_start:
        return ExpectedToDate(bookedTotal=booked_total, expectedToDate=0.0)
    if as_of >= campaign_end:
        return ExpectedToDate(bookedTotal=booked_total, expectedToDate=booked_total)

    expected = math.fsum(
        _burst_amount(b, metric) * elapsed_fraction(b.startDate, b.endDate, as_of)
        for b in bursts
    )
    return ExpectedToDate(bookedTotal=booked_total, expectedToDate=min(expected, booked_total))


def expected_daily_series(bursts: Sequence[Burst]) -> List[ExpectedDay]:
    """
    Spread each burst evenly over its inclusive days.

    Overlapping bursts add. The series covers every day from the earliest
    burst start to the latest burst end, including gap days at 0.

    Returns:
        List of ExpectedDay with daily and cumulative spend/deliverable.
    """
    if not bursts:
        return []

    daily_spend: Dict[date, List[float]] = {}
    daily_deliverable: Dict[date, List[float]] = {}
    for burst in bursts:
        days = inclusive_days(burst.startDate, burst.endDate)
        spend_per_day = burst.plannedSpend / days
        deliverable_per_day = burst.plannedDeliverable / days
        for offset in range(days):
            day = burst.startDate + timedelta(days=offset)
            daily_spend.setdefault(day, []).append(spend_per_day)
            daily_deliverable.setdefault(day, []).append(deliverable_per_day)

    start = min(b.startDate for b in bursts)
    end = max(b.endDate for b in bursts)
    series: List[ExpectedDay] = []
    spend_running: List[float] = []
    deliverable_running: List[float] = []
    day = start
    while day <= end:
        spend = math.fsum(daily_spend.get(day, []))
        deliverable = math.fsum(daily_deliverable.get(day, []))
        spend_running.append(spend)
        deliverable_running.append(deliverable)
        series.append(
            ExpectedDay(
                date=day,
                spend=spend,
                deliverable=deliverable,
                cumulativeSpend=math.fsum(spend_running),
                cumulativeDeliverable=math.fsum(deliverable_running),
            )
        )
        day += timedelta(days=1)
    return series


# =============================================================================
# Month-bucket Variant
# =============================================================================

def _month_bounds(year: int, month: int) -> tuple:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def compute_month_bucket_to_date(
    months: Iterable[MonthBucket],
    as_of: date,
    campaign_start: Optional[date] = None,
    campaign_end: Optional[date] = None,
) -> ExpectedToDate:
    """
    Expected spend to date for a month-bucketed delivery schedule.

    In the as-of month the proration window is the calendar month clipped to
    the campaign start/end, so a campaign starting on the 15th of a 30-day
    month prorates over 16 days rather than 30.

    Args:
        months: Month buckets.
        as_of: Calendar date in the business timezone.
        campaign_start: Campaign first day, if known.
        campaign_end: Campaign last day, if known.

    Returns:
        ExpectedToDate(bookedTotal, expectedToDate)
    """
    buckets = list(months)
    booked_total = math.fsum(m.plannedAmount for m in buckets)

    if campaign_start and as_of < campaign_start:
        return ExpectedToDate(bookedTotal=booked_total, expectedToDate=0.0)
    if campaign_end and as_of >= campaign_end:
        return ExpectedToDate(bookedTotal=booked_total, expectedToDate=booked_total)

    as_of_key = (as_of.year, as_of.month)
    contributions: List[float] = []
    for bucket in buckets:
        key = (bucket.year, bucket.month)
        if key < as_of_key:
            contributions.append(bucket.plannedAmount)
        elif key == as_of_key:
            window_start, window_end = _month_bounds(bucket.year, bucket.month)
            if campaign_start and window_start <= campaign_start <= window_end:
                window_start = campaign_start
            if campaign_end and window_start <= campaign_end <= window_end:
                window_end = campaign_end
            fraction = elapsed_fraction(window_start, window_end, as_of)
            contributions.append(bucket.plannedAmount * fraction)

    expected = math.fsum(contributions)
    return ExpectedToDate(bookedTotal=booked_total, expectedToDate=min(expected, booked_total))
