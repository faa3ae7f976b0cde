"""
Planned Schedule Normalisation Service

Turns loosely-typed planning records (JSON strings, single objects, lists,
database rows with inconsistent key names and currency-formatted numbers) into
the validated planning IR used by the rest of the engine:

- Burst / LineItemSchedule for per-line-item flighting
- MonthBucket for campaign-level month-bucketed delivery schedules

Every public function here is total: malformed input yields an empty result or
zeroed fields, never an exception.

Key rules:
- Dates are coerced to calendar dates in the business timezone
- Money/count fields strip every character except digits, '.' and '-', and
  fall back to 0 when parsing fails; negatives clamp to 0
- Reversed burst dates are swapped; a missing end date equals the start date
- Per-unit buys without an explicit deliverable derive it from amount / rate
"""

import json
import logging
import math
import re
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pacing_engine.core.clock import to_business_date
from pacing_engine.models import Burst, ChannelGroup, LineItemSchedule, MonthBucket

logger = logging.getLogger(__name__)

# =============================================================================
# CONSTANTS - Accepted Key Aliases
# =============================================================================

BURST_START_KEYS: Sequence[str] = ('start_date', 'startDate', 'start', 'begin_date', 'beginDate')
BURST_END_KEYS: Sequence[str] = ('end_date', 'endDate', 'end', 'stop_date', 'stopDate')
BURST_AMOUNT_KEYS: Sequence[str] = (
    'budget_number',
    'budgetNumber',
    'budget',
    'media_investment',
    'mediaInvestment',
    'amount',
)
BURST_DELIVERABLE_KEYS: Sequence[str] = (
    'calculated_value_number',
    'calculatedValueNumber',
    'calculated_value',
    'calculatedValue',
    'deliverables',
    'deliverable',
    'conversions',
)
BURST_RATE_KEYS: Sequence[str] = (
    'buy_amount',
    'buyAmount',
    'buy_amount_number',
    'buyAmountNumber',
    'rate',
)

LINE_ITEM_ID_KEYS: Sequence[str] = ('line_item_id', 'lineItemId')
CAMPAIGN_ID_KEYS: Sequence[str] = ('mba_number', 'mbaNumber', 'campaign_id', 'campaignId')
CLIENT_NAME_KEYS: Sequence[str] = ('client_name', 'clientName', 'client')
CAMPAIGN_NAME_KEYS: Sequence[str] = ('campaign_name', 'campaignName')
PLATFORM_KEYS: Sequence[str] = ('platform', 'publisher', 'network', 'site')
BUY_TYPE_KEYS: Sequence[str] = ('buy_type', 'buyType')
TOTAL_BUDGET_KEYS: Sequence[str] = ('total_budget', 'totalBudget', 'budget', 'media_investment')
DELIVERABLE_TOTAL_KEYS: Sequence[str] = (
    'goal_deliverable_total',
    'deliverables_total',
    'total_deliverables',
    'deliverables',
)
BURSTS_KEYS: Sequence[str] = ('bursts_json', 'bursts')

# Buy types priced per thousand units vs per single unit
PER_MILLE_BUY_TOKENS: Sequence[str] = ('cpm',)
PER_UNIT_BUY_TOKENS: Sequence[str] = ('cpc', 'cpv', 'cpa', 'cpl', 'cpi', 'lead')

MONTH_NAMES: Dict[str, int] = {
    'january': 1, 'february': 2, 'march': 3, 'april': 4, 'may': 5, 'june': 6,
    'july': 7, 'august': 8, 'september': 9, 'october': 10, 'november': 11, 'december': 12,
}

_NON_NUMERIC = re.compile(r'[^0-9.\-]')
_NON_SLUG = re.compile(r'[^a-z0-9]+')


# =============================================================================
# Scalar Helpers
# =============================================================================

def parse_number(value: Any) -> float:
    """
    Coerce a currency/count value to a non-negative float.

    Examples:
        "$3,100.00" -> 3100.0, "1,000 imps" -> 1000.0, "n/a" -> 0.0, -5 -> 0.0
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        cleaned = _NON_NUMERIC.sub('', value)
        try:
            number = float(cleaned)
        except ValueError:
            return 0.0
    else:
        return 0.0

    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def slugify(value: Any, fallback: str = 'unknown') -> str:
    """Lower-case, hyphen-separated ASCII slug."""
    if not isinstance(value, str):
        return fallback
    slug = _NON_SLUG.sub('-', value.strip().lower()).strip('-')
    return slug or fallback


def normalize_identifier(value: Any) -> Optional[str]:
    """Trimmed, lower-cased identifier or None when empty."""
    if value is None:
        return None
    text = str(value).strip().lower()
    return text or None


def _first_present(record: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = record.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _load_records(raw: Any) -> List[Dict[str, Any]]:
    """Accept a JSON string, a list of objects or a single object."""
    if raw is None:
        return []
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode('utf-8', errors='replace')
    if isinstance(raw, str):
        if not raw.strip():
            return []
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding malformed schedule JSON")
            return []
    if isinstance(raw, Mapping):
        return [dict(raw)]
    if isinstance(raw, list):
        return [dict(item) for item in raw if isinstance(item, Mapping)]
    return []


# =============================================================================
# Deliverable Derivation
# =============================================================================

def derive_planned_deliverable(buy_type: Optional[str], amount: float, rate: float) -> float:
    """
    Planned units implied by a priced buy.

    - CPM: amount / rate * 1000
    - Per-unit buys (CPC, CPV, CPA, CPL...): amount / rate
    - Anything else (fixed cost, bonus...): 0

    Args:
        buy_type: Buy type as booked.
        amount: Planned spend.
        rate: Price per unit (per thousand for CPM).

    Returns:
        Derived deliverable units, or 0 when not derivable.
    """
    if not buy_type or amount <= 0 or rate <= 0:
        return 0.0
    normalized = buy_type.strip().lower()
    if any(token in normalized for token in PER_MILLE_BUY_TOKENS):
        return amount / rate * 1000.0
    if any(token in normalized for token in PER_UNIT_BUY_TOKENS):
        return amount / rate
    return 0.0


# =============================================================================
# Bursts
# =============================================================================

def _normalize_burst(record: Mapping[str, Any], buy_type: Optional[str]) -> Optional[Burst]:
    start = to_business_date(_first_present(record, BURST_START_KEYS))
    end = to_business_date(_first_present(record, BURST_END_KEYS))
    if start is None:
        return None
    if end is None:
        end = start
    if end < start:
        start, end = end, start

    spend = parse_number(_first_present(record, BURST_AMOUNT_KEYS))
    deliverable = parse_number(_first_present(record, BURST_DELIVERABLE_KEYS))
    if deliverable == 0:
        burst_buy_type = _clean_text(_first_present(record, BUY_TYPE_KEYS)) or buy_type
        rate = parse_number(_first_present(record, BURST_RATE_KEYS))
        deliverable = derive_planned_deliverable(burst_buy_type, spend, rate)

    return Burst(
        startDate=start,
        endDate=end,
        plannedSpend=spend,
        plannedDeliverable=deliverable,
    )


def normalize_bursts(raw: Any, buy_type: Optional[str] = None) -> List[Burst]:
    """
    Normalise raw burst data into validated Burst objects.

    Args:
        raw: JSON string, list of objects or single object.
        buy_type: Line item buy type used for deliverable derivation when a
            burst carries no buy type of its own.

    Returns:
        Bursts ordered by start date; records without a usable start date are
        skipped. Malformed input returns [].
    """
    bursts = []
    for record in _load_records(raw):
        burst = _normalize_burst(record, buy_type)
        if burst is not None:
            bursts.append(burst)
    bursts.sort(key=lambda b: (b.startDate, b.endDate))
    return bursts


def burst_bounds(bursts: Iterable[Burst]) -> Optional[tuple]:
    """Earliest start and latest end across bursts, or None when empty."""
    starts = []
    ends = []
    for burst in bursts:
        starts.append(burst.startDate)
        ends.append(burst.endDate)
    if not starts:
        return None
    return min(starts), max(ends)


# =============================================================================
# Line Items / Plans
# =============================================================================

def normalize_line_item(
    raw: Mapping[str, Any],
    channel_group: ChannelGroup,
    campaign_meta: Optional[Mapping[str, Any]] = None,
) -> Optional[LineItemSchedule]:
    """
    Build a LineItemSchedule from a plan store row.

    When the row has no usable bursts but carries its own start/end dates, a
    single burst spanning them with the line item totals is synthesised.

    Args:
        raw: Plan store row / JSON object.
        channel_group: Channel group the row was read from.
        campaign_meta: Optional campaign-level fields (client_name,
            campaign_name) overriding the row's own.

    Returns:
        LineItemSchedule, or None when the row lacks a line item or campaign id.
    """
    if not isinstance(raw, Mapping):
        return None

    line_item_id = normalize_identifier(_first_present(raw, LINE_ITEM_ID_KEYS))
    campaign_id = _clean_text(_first_present(raw, CAMPAIGN_ID_KEYS))
    if not line_item_id or not campaign_id:
        return None

    meta = campaign_meta or {}
    client_name = _clean_text(_first_present(meta, CLIENT_NAME_KEYS)) or _clean_text(
        _first_present(raw, CLIENT_NAME_KEYS)
    )
    campaign_name = _clean_text(_first_present(meta, CAMPAIGN_NAME_KEYS)) or _clean_text(
        _first_present(raw, CAMPAIGN_NAME_KEYS)
    )
    buy_type = _clean_text(_first_present(raw, BUY_TYPE_KEYS))
    total_budget = parse_number(_first_present(raw, TOTAL_BUDGET_KEYS))
    deliverable_total = parse_number(_first_present(raw, DELIVERABLE_TOTAL_KEYS))

    bursts = normalize_bursts(_first_present(raw, BURSTS_KEYS), buy_type=buy_type)

    if not bursts:
        start = to_business_date(raw.get('start_date') or raw.get('startDate'))
        end = to_business_date(raw.get('end_date') or raw.get('endDate')) or start
        if start is not None:
            if end < start:
                start, end = end, start
            bursts = [
                Burst(
                    startDate=start,
                    endDate=end,
                    plannedSpend=total_budget,
                    plannedDeliverable=deliverable_total,
                )
            ]

    if total_budget == 0:
        total_budget = sum(b.plannedSpend for b in bursts)
    if deliverable_total == 0:
        deliverable_total = sum(b.plannedDeliverable for b in bursts)

    return LineItemSchedule(
        lineItemId=line_item_id,
        campaignId=campaign_id,
        campaignName=campaign_name,
        clientSlug=slugify(client_name),
        clientName=client_name,
        channelGroup=channel_group,
        platform=_clean_text(_first_present(raw, PLATFORM_KEYS)),
        buyType=buy_type,
        totalBudget=total_budget,
        deliverableTotal=deliverable_total,
        bursts=bursts,
    )


def normalize_plan(
    line_items_by_group: Mapping[ChannelGroup, Iterable[Mapping[str, Any]]],
    versions: Optional[Iterable[Mapping[str, Any]]] = None,
) -> List[LineItemSchedule]:
    """
    Merge line items of several channel groups into one ordered schedule list.

    Args:
        line_items_by_group: Raw rows keyed by channel group.
        versions: Latest plan version rows; provide campaign-level client and
            campaign names keyed by campaign id.

    Returns:
        Schedules de-duplicated by lineItemId (last one wins) and ordered by
        (campaignId, lineItemId).
    """
    meta_by_campaign: Dict[str, Mapping[str, Any]] = {}
    for version in versions or []:
        campaign_id = _clean_text(_first_present(version, CAMPAIGN_ID_KEYS))
        if campaign_id:
            meta_by_campaign[campaign_id] = version

    by_id: Dict[str, LineItemSchedule] = {}
    skipped = 0
    for group, rows in line_items_by_group.items():
        for row in rows or []:
            campaign_id = _clean_text(_first_present(row, CAMPAIGN_ID_KEYS)) if isinstance(row, Mapping) else None
            schedule = normalize_line_item(row, group, meta_by_campaign.get(campaign_id or ''))
            if schedule is None:
                skipped += 1
                continue
            by_id[schedule.lineItemId] = schedule

    if skipped:
        logger.info(f"Skipped {skipped} plan rows without line item or campaign id")

    return sorted(by_id.values(), key=lambda s: (s.campaignId, s.lineItemId))


# =============================================================================
# Month-bucket Delivery Schedules
# =============================================================================

def parse_month_year(value: Any) -> Optional[tuple]:
    """
    Parse labels like "January 2024", "Jan 2024" or "2024-01" into (year, month).
    """
    if not isinstance(value, str):
        return None
    text = value.strip().lower()
    match = re.match(r'^(\d{4})-(\d{1,2})', text)
    if match:
        year, month = int(match.group(1)), int(match.group(2))
        return (year, month) if 1 <= month <= 12 else None

    parts = text.replace(',', ' ').split()
    if len(parts) != 2 or not parts[1].isdigit():
        return None
    name = parts[0]
    for month_name, month_number in MONTH_NAMES.items():
        if month_name == name or (len(name) >= 3 and month_name.startswith(name)):
            return int(parts[1]), month_number
    return None


def month_planned_amount(record: Mapping[str, Any]) -> float:
    """Line item amounts plus fees, production and ad-serving tech fees."""
    total = 0.0
    line_items = record.get('lineItems') or record.get('line_items') or []
    if isinstance(line_items, list):
        for item in line_items:
            if isinstance(item, Mapping):
                total += parse_number(item.get('amount'))
    for key in ('feeTotal', 'fee_total', 'production', 'adservingTechFees', 'adserving_tech_fees'):
        total += parse_number(record.get(key))
    return total


def normalize_delivery_schedule(raw: Any) -> List[MonthBucket]:
    """
    Normalise a campaign delivery schedule into month buckets.

    Accepts a list of month records, a JSON string of one, or an object with a
    "months" list. Months with unparseable labels are skipped; duplicate months
    are summed.
    """
    if isinstance(raw, (str, bytes, bytearray)):
        loaded = _load_records(raw)
        raw = loaded[0] if len(loaded) == 1 and 'months' in loaded[0] else loaded
    if isinstance(raw, Mapping):
        raw = raw.get('months') or []
    if not isinstance(raw, list):
        return []

    amounts: Dict[tuple, float] = {}
    for record in raw:
        if not isinstance(record, Mapping):
            continue
        key = parse_month_year(record.get('monthYear') or record.get('month_year'))
        if key is None:
            continue
        amounts[key] = amounts.get(key, 0.0) + month_planned_amount(record)

    return [
        MonthBucket(year=year, month=month, plannedAmount=amount)
        for (year, month), amount in sorted(amounts.items())
    ]


def campaign_bounds(start: Any, end: Any) -> tuple:
    """Coerce campaign start/end values, swapping them when reversed."""
    start_date: Optional[date] = to_business_date(start)
    end_date: Optional[date] = to_business_date(end)
    if start_date and end_date and end_date < start_date:
        start_date, end_date = end_date, start_date
    return start_date, end_date
