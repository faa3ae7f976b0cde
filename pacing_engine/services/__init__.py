"""
Pacing Services Module

Business logic of the pacing engine. Every service is stateless; the only
I/O happens in the plan reader (asyncpg) and the delivery gateway (BigQuery).

Services:
- schedule: Planning record normalisation (bursts, line items, month buckets)
- expected: Expected-to-date calculator (per burst and per month bucket)
- classification: UNDER / ON / OVER band and deliverable metric mapping
- rollup: Campaign, client and portfolio roll-ups
- windows: Window clamping and named presets
- delivery_gateway: Warehouse delivery fetch with retry, deadline and cancel
- plans: Media plan store reader
- pacing: Pipeline entry points used by the API layer
"""

# =============================================================================
# Schedule Normalisation
# =============================================================================

from pacing_engine.services.schedule import (
    normalize_bursts,
    normalize_line_item,
    normalize_plan,
    normalize_delivery_schedule,
    derive_planned_deliverable,
    parse_number,
)

# =============================================================================
# Expected Values / Classification / Roll-ups
# =============================================================================

from pacing_engine.services.expected import (
    compute_to_date,
    compute_month_bucket_to_date,
    expected_daily_series,
)
from pacing_engine.services.classification import (
    classify_pace,
    classify_line_item,
    map_deliverable_metric,
    ON_PACE_LOWER_PCT,
    ON_PACE_UPPER_PCT,
)
from pacing_engine.services.rollup import (
    summarize_campaigns,
    aggregate_portfolio,
)
from pacing_engine.services.windows import (
    clamp_date_range,
    resolve_preset_window,
)

# =============================================================================
# I/O Services
# =============================================================================

from pacing_engine.services.delivery_gateway import (
    DeliveryDataGateway,
    normalize_line_item_ids,
    normalize_channel,
    totals_by_line_item,
)
from pacing_engine.services.plans import PlanRepository

# =============================================================================
# Pipeline
# =============================================================================

from pacing_engine.services.pacing import (
    run_campaign_pacing,
    run_portfolio_pacing,
    campaign_expected_spend_to_date,
    round_for_presentation,
)

__all__ = [
    # ----- Schedule -----
    'normalize_bursts',
    'normalize_line_item',
    'normalize_plan',
    'normalize_delivery_schedule',
    'derive_planned_deliverable',
    'parse_number',
    # ----- Expected -----
    'compute_to_date',
    'compute_month_bucket_to_date',
    'expected_daily_series',
    # ----- Classification -----
    'classify_pace',
    'classify_line_item',
    'map_deliverable_metric',
    'ON_PACE_LOWER_PCT',
    'ON_PACE_UPPER_PCT',
    # ----- Roll-ups / Windows -----
    'summarize_campaigns',
    'aggregate_portfolio',
    'clamp_date_range',
    'resolve_preset_window',
    # ----- I/O -----
    'DeliveryDataGateway',
    'normalize_line_item_ids',
    'normalize_channel',
    'totals_by_line_item',
    'PlanRepository',
    # ----- Pipeline -----
    'run_campaign_pacing',
    'run_portfolio_pacing',
    'campaign_expected_spend_to_date',
    'round_for_presentation',
]
