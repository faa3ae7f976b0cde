"""
Pacing Pipeline Service

Orchestrates the reconciliation of planned schedules against delivered
actuals:

    validate -> load schedules -> clamp window
             -> [fetch actuals || compute expected values]
             -> classify -> summarise

Fetching actuals and computing expected values are independent and run
concurrently; classification waits for both. The pipeline holds no state
between calls.

Entry points:
- run_campaign_pacing: one campaign, explicit line item ids
- run_portfolio_pacing: every campaign (optionally per client) for a preset
- campaign_expected_spend_to_date: month-bucketed campaign expectation
"""

import asyncio
import logging
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar
from uuid import uuid4

from pydantic import BaseModel

from pacing_engine.core.clock import business_today, to_business_date
from pacing_engine.core.errors import NotFoundError, ValidationError
from pacing_engine.models import (
    CampaignPacingResponse,
    CampaignSummary,
    ChannelGroup,
    DateWindow,
    DeliverableMetric,
    DeliveryRow,
    DeliveryTotals,
    ExpectedSpendResponse,
    ExpectedToDate,
    LineItemSchedule,
    PacingMetric,
    PacingRequest,
    PacingResult,
    PacingSeriesPoint,
    PortfolioRequest,
    PortfolioSnapshot,
)
from pacing_engine.services.classification import (
    classify_line_item,
    classify_pace,
    deliverable_value,
    map_deliverable_metric,
)
from pacing_engine.services.delivery_gateway import (
    DeliveryDataGateway,
    normalize_line_item_ids,
    totals_by_line_item,
)
from pacing_engine.services.expected import (
    compute_month_bucket_to_date,
    compute_to_date,
    expected_daily_series,
)
from pacing_engine.services.plans import PlanRepository
from pacing_engine.services.rollup import aggregate_portfolio, summarize_campaigns
from pacing_engine.services.windows import resolve_preset_window

logger = logging.getLogger(__name__)

MONEY_DECIMAL_PLACES: int = 4

ModelT = TypeVar('ModelT', bound=BaseModel)

ExpectedPair = Tuple[ExpectedToDate, ExpectedToDate]


# =============================================================================
# Validation
# =============================================================================

def parse_request_date(value: Optional[str], field: str) -> Optional[date]:
    """Parse an optional ISO date from a request; invalid values are a ValidationError."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    parsed = to_business_date(value)
    if parsed is None:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)", field=field)
    return parsed


def _validate_range(start: Optional[date], end: Optional[date]) -> None:
    if start is not None and end is not None and end < start:
        raise ValidationError('endDate must be on or after startDate', field='endDate')


def validate_pacing_request(request: PacingRequest) -> Tuple[str, List[str], Optional[date], Optional[date]]:
    """
    Validate a campaign pacing request before any I/O.

    Returns:
        Tuple of (campaign_id, normalised line item ids, start, end).

    Raises:
        ValidationError: Missing campaign id, empty/blank line item ids or
            malformed dates.
    """
    campaign_id = (request.campaignId or '').strip()
    if not campaign_id:
        raise ValidationError('campaignId is required', field='campaignId')

    if not request.lineItemIds:
        raise ValidationError('lineItemIds must be a non-empty array', field='lineItemIds')

    ids, _ = normalize_line_item_ids(request.lineItemIds)
    if not ids:
        raise ValidationError('lineItemIds must contain at least one non-blank id', field='lineItemIds')

    start = parse_request_date(request.startDate, 'startDate')
    end = parse_request_date(request.endDate, 'endDate')
    _validate_range(start, end)
    return campaign_id, ids, start, end


# =============================================================================
# Computation
# =============================================================================

def compute_expected_values(schedules: Iterable[LineItemSchedule], as_of: date) -> Dict[str, ExpectedPair]:
    """Expected spend and deliverables at as_of for every schedule."""
    return {
        schedule.lineItemId: (
            compute_to_date(schedule.bursts, as_of, PacingMetric.SPEND),
            compute_to_date(schedule.bursts, as_of, PacingMetric.DELIVERABLE),
        )
        for schedule in schedules
    }


def search_line_item_ids(schedules: Iterable[LineItemSchedule]) -> List[str]:
    """Line items booked under the search channel group (read from the search fact)."""
    return [s.lineItemId for s in schedules if s.channelGroup == ChannelGroup.SEARCH]


def build_line_item_results(
    schedules: Sequence[LineItemSchedule],
    expected: Dict[str, ExpectedPair],
    actuals: Dict[str, DeliveryTotals],
) -> List[PacingResult]:
    """Join schedules with expected values and delivered totals, then classify."""
    results = []
    for schedule in schedules:
        expected_spend, expected_deliverable = expected[schedule.lineItemId]
        actual = actuals.get(schedule.lineItemId, DeliveryTotals())
        results.append(classify_line_item(schedule, actual, expected_spend, expected_deliverable))
    return results


def _unplanned_result(line_item_id: str, campaign: Optional[LineItemSchedule], campaign_id: str, actual: DeliveryTotals) -> PacingResult:
    """Result for a requested line item with no plan: nothing expected, so ON."""
    return PacingResult(
        lineItemId=line_item_id,
        campaignId=campaign_id,
        campaignName=campaign.campaignName if campaign else None,
        clientSlug=campaign.clientSlug if campaign else 'unknown',
        deliverableMetric=DeliverableMetric.IMPRESSIONS,
        spendToDate=actual.amountSpent,
        spendPaceStatus=classify_pace(actual.amountSpent, 0.0),
        deliverableToDate=actual.impressions,
        deliverablePaceStatus=classify_pace(actual.impressions, 0.0),
    )


def _expected_lookup(schedule: LineItemSchedule):
    """Cumulative (spend, deliverable) expected by the end of a day, from the daily curve."""
    curve = expected_daily_series(schedule.bursts)
    by_day = {d.date: d for d in curve}

    def expected_on(day: date) -> Tuple[float, float]:
        if not curve or day < curve[0].date:
            return 0.0, 0.0
        point = by_day[day] if day <= curve[-1].date else curve[-1]
        return point.cumulativeSpend, point.cumulativeDeliverable

    return expected_on


def build_pacing_series(
    schedule: LineItemSchedule,
    rows: Iterable[DeliveryRow],
    window: DateWindow,
) -> List[PacingSeriesPoint]:
    """
    Cumulative expected vs actual for each day of the window.

    Expected values come from the schedule's daily curve and are cumulative
    from the campaign start (not the window start); actual values accumulate
    the window's delivery rows.
    """
    metric = map_deliverable_metric(schedule.channelGroup, schedule.buyType, schedule.platform)
    expected_on = _expected_lookup(schedule)
    daily_spend: Dict[date, float] = {}
    daily_deliverable: Dict[date, float] = {}
    for row in rows:
        if row.lineItemId != schedule.lineItemId:
            continue
        daily_spend[row.date] = daily_spend.get(row.date, 0.0) + row.amountSpent
        daily_deliverable[row.date] = daily_deliverable.get(row.date, 0.0) + deliverable_value(row, metric)

    points = []
    spend_total = 0.0
    deliverable_total = 0.0
    day = window.startDate
    while day <= window.endDate:
        spend_total += daily_spend.get(day, 0.0)
        deliverable_total += daily_deliverable.get(day, 0.0)
        expected_spend, expected_deliverable = expected_on(day)
        points.append(
            PacingSeriesPoint(
                date=day,
                expectedSpend=expected_spend,
                actualSpend=spend_total,
                expectedDeliverable=expected_deliverable,
                actualDeliverable=deliverable_total,
            )
        )
        day += timedelta(days=1)
    return points


# =============================================================================
# Presentation
# =============================================================================

def _round_floats(value: Any, places: int) -> Any:
    if isinstance(value, float):
        return round(value, places)
    if isinstance(value, dict):
        return {k: _round_floats(v, places) for k, v in value.items()}
    if isinstance(value, list):
        return [_round_floats(v, places) for v in value]
    return value


def round_for_presentation(model: ModelT, places: int = MONEY_DECIMAL_PLACES) -> ModelT:
    """Copy of a response model with every float rounded; the input is not modified."""
    return type(model).model_validate(_round_floats(model.model_dump(), places))


# =============================================================================
# Entry Points
# =============================================================================

async def run_campaign_pacing(
    request: PacingRequest,
    reader: PlanRepository,
    gateway: DeliveryDataGateway,
    cancel_event: Optional[asyncio.Event] = None,
) -> CampaignPacingResponse:
    """
    Pace the requested line items of one campaign.

    Args:
        request: Campaign id, line item ids and optional window.
        reader: Plan store reader.
        gateway: Delivery gateway.
        cancel_event: Optional abort signal for the delivery fetch.

    Returns:
        CampaignPacingResponse with per line item results and the campaign
        summary. as_of is the clamped window end.

    Raises:
        ValidationError, WarehouseTimeoutError, QueryError
    """
    campaign_id, ids, start, end = validate_pacing_request(request)
    request_id = uuid4().hex[:8]

    planned = await reader.get_campaign_line_items(campaign_id)
    wanted = set(ids)
    schedules = [s for s in planned if s.lineItemId in wanted]
    missing = sorted(wanted - {s.lineItemId for s in schedules})
    if missing:
        logger.warning(f"[{request_id}] {len(missing)} line items have no plan in campaign {campaign_id}: {missing[:5]}")

    window = gateway.clamp_window(start, end)
    as_of = window.endDate

    # The fetch reuses this window so as_of and the queried dates agree
    fetch_result, expected = await asyncio.gather(
        gateway.fetch(
            ids,
            cancel_event=cancel_event,
            request_id=request_id,
            search_line_item_ids=search_line_item_ids(schedules),
            window=window,
        ),
        asyncio.to_thread(compute_expected_values, schedules, as_of),
    )

    actuals = totals_by_line_item(fetch_result.rows)
    results = build_line_item_results(schedules, expected, actuals)
    reference = schedules[0] if schedules else (planned[0] if planned else None)
    results.extend(
        _unplanned_result(line_item_id, reference, campaign_id, actuals.get(line_item_id, DeliveryTotals()))
        for line_item_id in missing
    )

    if request.includeSeries:
        by_id = {s.lineItemId: s for s in schedules}
        results = [
            r.model_copy(update={'series': build_pacing_series(by_id[r.lineItemId], fetch_result.rows, window)})
            if r.lineItemId in by_id else r
            for r in results
        ]

    campaigns = summarize_campaigns(results)
    if campaigns:
        campaign = campaigns[0]
    else:
        campaign = CampaignSummary(clientSlug='unknown', campaignId=campaign_id)

    logger.info(
        f"[{request_id}] Campaign {campaign_id} paced: {len(results)} line items, "
        f"spend {campaign.spendToDate:.2f} vs expected {campaign.expectedSpendToDate:.2f} "
        f"({campaign.spendPaceStatus.value})"
    )

    return CampaignPacingResponse(
        asOfDate=as_of,
        window=window,
        truncated=fetch_result.truncated,
        warnings=fetch_result.warnings,
        campaign=campaign,
        requestId=request_id,
    )


async def run_portfolio_pacing(
    request: PortfolioRequest,
    reader: PlanRepository,
    gateway: DeliveryDataGateway,
    cancel_event: Optional[asyncio.Event] = None,
) -> PortfolioSnapshot:
    """
    Pace every current line item (optionally restricted to clients).

    The window comes from explicit dates when given, otherwise from the
    preset. Expected values are computed at dataAsAt, the latest date the
    warehouse actually holds for the window.
    """
    request_id = uuid4().hex[:8]
    start = parse_request_date(request.startDate, 'startDate')
    end = parse_request_date(request.endDate, 'endDate')
    _validate_range(start, end)

    schedules = await reader.get_portfolio_line_items(request.clientSlugs)

    if start is not None or end is not None:
        window = gateway.clamp_window(start, end)
    else:
        window = resolve_preset_window(
            request.preset,
            gateway.today(),
            bursts=[b for s in schedules for b in s.bursts],
        )

    delivery = await gateway.fetch_daily_totals(
        [s.lineItemId for s in schedules],
        window,
        cancel_event=cancel_event,
        request_id=request_id,
        search_line_item_ids=search_line_item_ids(schedules),
    )
    as_of = delivery.dataAsAt or window.endDate

    expected = compute_expected_values(schedules, as_of)
    results = build_line_item_results(schedules, expected, delivery.totals)
    snapshot = aggregate_portfolio(results, as_of=as_of, data_as_at=delivery.dataAsAt, window=window)
    if request.includeDaily:
        snapshot = snapshot.model_copy(update={'deliveryDaily': delivery.daily})
    return snapshot


async def campaign_expected_spend_to_date(
    campaign_id: str,
    reader: PlanRepository,
    as_of: Optional[date] = None,
) -> ExpectedSpendResponse:
    """
    Expected spend to date from a campaign's month-bucketed delivery schedule.

    Args:
        campaign_id: Campaign identifier.
        reader: Plan store reader.
        as_of: Defaults to business today.

    Raises:
        ValidationError: Blank campaign id.
        NotFoundError: No plan version for the campaign.
    """
    campaign_id = (campaign_id or '').strip()
    if not campaign_id:
        raise ValidationError('campaignId is required', field='campaignId')

    schedule = await reader.get_delivery_schedule(campaign_id)
    if schedule is None:
        raise NotFoundError(f"No media plan found for campaign {campaign_id}")

    as_of = as_of or business_today()
    expected = compute_month_bucket_to_date(
        schedule.months,
        as_of,
        campaign_start=schedule.campaignStart,
        campaign_end=schedule.campaignEnd,
    )
    return ExpectedSpendResponse(
        campaignId=campaign_id,
        asOfDate=as_of,
        bookedTotal=expected.bookedTotal,
        expectedToDate=expected.expectedToDate,
    )
