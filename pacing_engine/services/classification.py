"""
Pacing Classification Service

Classifies actual delivery against expected-to-date into UNDER / ON / OVER and
builds the per-line-item PacingResult.

The 90-110% on-pace band is a fixed design constant shared by spend pacing and
deliverable pacing:
- expected is None or 0 -> ON (nothing to pace against yet)
- ratio = actual / expected * 100
- ratio < 90 -> UNDER, ratio > 110 -> OVER, otherwise ON (bounds inclusive)

Also maps a line item's buy type / platform to the delivery column that counts
as its deliverable (impressions, clicks, results or 3-second video views).
"""

import logging
from typing import Iterable, Optional, Sequence, Union

from pacing_engine.models import (
    ChannelGroup,
    DeliverableMetric,
    DeliveryRow,
    DeliveryTotals,
    ExpectedToDate,
    LineItemSchedule,
    PaceStatus,
    PacingResult,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Pacing Band
# =============================================================================

ON_PACE_LOWER_PCT: float = 90.0
ON_PACE_UPPER_PCT: float = 110.0


# Keyword lists checked in order against "buy_type platform" (lower-cased)
VIDEO_VIEW_KEYWORDS: Sequence[str] = (
    'cpv', 'video views', 'view rate', 'video', 'views', 'view', '3s', 'thruplay', 'watch', 'youtube',
)
RESULT_KEYWORDS: Sequence[str] = (
    'cpa', 'conversions', 'conversion', 'results', 'result', 'leads', 'lead',
    'purchase', 'sales', 'performance', 'app install', 'installs',
)
CLICK_KEYWORDS: Sequence[str] = ('cpc', 'clicks', 'click', 'traffic', 'link')


def pace_ratio(actual: Optional[float], expected: Optional[float]) -> Optional[float]:
    """actual / expected * 100, or None when nothing is expected."""
    if expected is None or expected == 0:
        return None
    # Band edges such as 110 / 100 must land exactly on 110.0
    return (actual or 0.0) * 100.0 / expected


def classify_pace(actual: Optional[float], expected: Optional[float]) -> PaceStatus:
    """
    Classify actual-to-date against expected-to-date.

    Args:
        actual: Delivered amount to date.
        expected: Expected amount to date.

    Returns:
        PaceStatus.UNDER, ON or OVER.

    Example:
        >>> classify_pace(9500, 10000)
        <PaceStatus.ON: 'ON'>
    """
    ratio = pace_ratio(actual, expected)
    if ratio is None:
        return PaceStatus.ON
    if ratio < ON_PACE_LOWER_PCT:
        return PaceStatus.UNDER
    if ratio > ON_PACE_UPPER_PCT:
        return PaceStatus.OVER
    return PaceStatus.ON


# =============================================================================
# Deliverable Metric Mapping
# =============================================================================

def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def map_deliverable_metric(
    channel_group: Optional[ChannelGroup],
    buy_type: Optional[str],
    platform: Optional[str] = None,
) -> DeliverableMetric:
    """
    Pick which delivery column counts as the line item's deliverable.

    Checked in order: video views, results, clicks; anything else paces on
    impressions. Search line items without a recognisable buy type pace on
    clicks.
    """
    combined = f"{buy_type or ''} {platform or ''}".strip().lower()

    if _contains_any(combined, VIDEO_VIEW_KEYWORDS):
        return DeliverableMetric.VIDEO_3S_VIEWS
    if _contains_any(combined, RESULT_KEYWORDS):
        return DeliverableMetric.RESULTS
    if _contains_any(combined, CLICK_KEYWORDS):
        return DeliverableMetric.CLICKS
    if channel_group == ChannelGroup.SEARCH:
        return DeliverableMetric.CLICKS
    return DeliverableMetric.IMPRESSIONS


def deliverable_value(totals: Union[DeliveryTotals, DeliveryRow], metric: DeliverableMetric) -> float:
    """Delivered units of the given metric from totals or a single delivery row."""
    if metric == DeliverableMetric.CLICKS:
        return totals.clicks
    if metric == DeliverableMetric.RESULTS:
        return totals.results
    if metric == DeliverableMetric.VIDEO_3S_VIEWS:
        return totals.video3sViews
    return totals.impressions


# =============================================================================
# Line Item Result
# =============================================================================

def classify_line_item(
    schedule: LineItemSchedule,
    actual: DeliveryTotals,
    expected_spend: ExpectedToDate,
    expected_deliverable: ExpectedToDate,
) -> PacingResult:
    """
    Build the PacingResult of one line item.

    Args:
        schedule: Normalised planned schedule.
        actual: Delivered totals inside the pacing window.
        expected_spend: Booked/expected spend at the as-of date.
        expected_deliverable: Booked/expected deliverables at the as-of date.

    Returns:
        PacingResult with spend and deliverable statuses.
    """
    metric = map_deliverable_metric(schedule.channelGroup, schedule.buyType, schedule.platform)
    spend_to_date = actual.amountSpent
    deliverable_to_date = deliverable_value(actual, metric)

    return PacingResult(
        lineItemId=schedule.lineItemId,
        campaignId=schedule.campaignId,
        campaignName=schedule.campaignName,
        clientSlug=schedule.clientSlug,
        channelGroup=schedule.channelGroup,
        deliverableMetric=metric,
        spendToDate=spend_to_date,
        plannedSpendToDate=expected_spend.bookedTotal,
        expectedSpendToDate=expected_spend.expectedToDate,
        spendPaceStatus=classify_pace(spend_to_date, expected_spend.expectedToDate),
        spendPacePct=pace_ratio(spend_to_date, expected_spend.expectedToDate),
        deliverableToDate=deliverable_to_date,
        plannedDeliverableToDate=expected_deliverable.bookedTotal,
        expectedDeliverableToDate=expected_deliverable.expectedToDate,
        deliverablePaceStatus=classify_pace(deliverable_to_date, expected_deliverable.expectedToDate),
        deliverablePacePct=pace_ratio(deliverable_to_date, expected_deliverable.expectedToDate),
    )
