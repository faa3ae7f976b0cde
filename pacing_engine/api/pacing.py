"""
Pacing API Router

FastAPI endpoints for delivery pacing:
- POST /bulk: Raw delivery rows for a set of line items and a window
- POST /line-items: Per line item pacing for one campaign
- POST /portfolio: Client -> campaign -> line item pacing snapshot (cached)
- GET /campaigns/{campaign_id}/expected-spend-to-date: Month-bucketed expectation

Pacing errors are returned as {ok: false, error, message, requestId?} with the
status code of the error kind (400 validation, 404 not found, 502 query
failure, 504 timeout). Money values are rounded to 4 decimal places on the way
out; all internal arithmetic keeps full precision.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from pacing_engine.core.cache import make_cache_key
from pacing_engine.core.dependencies import (
    DeliveryGatewayDep,
    PlanRepositoryDep,
    PortfolioCacheDep,
)
from pacing_engine.core.errors import PacingError
from pacing_engine.models import (
    BulkDeliveryResponse,
    CampaignPacingResponse,
    ExpectedSpendResponse,
    PacingRequest,
    PortfolioRequest,
    PortfolioSnapshot,
)
from pacing_engine.services.delivery_gateway import normalize_line_item_ids
from pacing_engine.services.pacing import (
    campaign_expected_spend_to_date,
    parse_request_date,
    round_for_presentation,
    run_campaign_pacing,
    run_portfolio_pacing,
    validate_pacing_request,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _internal_error() -> HTTPException:
    return HTTPException(
        status_code=500,
        detail={'ok': False, 'error': 'internal_error', 'message': 'Internal server error'},
    )


def _pacing_http_error(error: PacingError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.to_detail())


# =============================================================================
# Delivery
# =============================================================================

@router.post("/bulk", response_model=BulkDeliveryResponse)
async def bulk_delivery(request: PacingRequest, gateway: DeliveryGatewayDep) -> BulkDeliveryResponse:
    """
    Fetch delivery rows for the requested line items.

    Rows are ascending by (date, channel, lineItemId). When the warehouse row
    cap is hit the response is still 200 with truncated=true.
    """
    try:
        _, ids, start, end = validate_pacing_request(request)
        result = await gateway.fetch(ids, start, end, search_line_item_ids=request.searchLineItemIds)

        response = BulkDeliveryResponse(
            rows=result.rows,
            count=result.count,
            truncated=result.truncated,
            window=result.window,
            warnings=result.warnings,
            requestId=result.requestId,
        )
        return round_for_presentation(response)

    except PacingError as e:
        logger.warning(f"Bulk delivery request rejected: {e.kind}: {e.message}")
        raise _pacing_http_error(e)
    except Exception:
        logger.exception("Error fetching bulk delivery")
        raise _internal_error()


# =============================================================================
# Pacing
# =============================================================================

@router.post("/line-items", response_model=CampaignPacingResponse)
async def line_item_pacing(
    request: PacingRequest,
    reader: PlanRepositoryDep,
    gateway: DeliveryGatewayDep,
) -> CampaignPacingResponse:
    """Pace the requested line items of one campaign against their plan."""
    try:
        response = await run_campaign_pacing(request, reader, gateway)
        return round_for_presentation(response)

    except PacingError as e:
        logger.warning(f"Line item pacing failed for campaign {request.campaignId}: {e.kind}: {e.message}")
        raise _pacing_http_error(e)
    except Exception:
        logger.exception(f"Error pacing campaign {request.campaignId}")
        raise _internal_error()


@router.post("/portfolio", response_model=PortfolioSnapshot)
async def portfolio_pacing(
    request: PortfolioRequest,
    reader: PlanRepositoryDep,
    gateway: DeliveryGatewayDep,
    cache: PortfolioCacheDep,
) -> PortfolioSnapshot:
    """
    Portfolio pacing snapshot.

    Snapshots are cached per (clients, window, as-of day) for the configured
    TTL; the cache lives here, the pipeline underneath is stateless.
    """
    try:
        # Validate dates before they become part of the cache key
        start = parse_request_date(request.startDate, 'startDate')
        end = parse_request_date(request.endDate, 'endDate')
        client_slugs, _ = normalize_line_item_ids(request.clientSlugs)

        key = make_cache_key(
            'portfolio',
            {
                'clients': client_slugs,
                'preset': request.preset.value,
                'start': start,
                'end': end,
                'daily': request.includeDaily,
                'today': gateway.today(),
            },
        )
        snapshot, hit = await cache.get_or_compute(
            key,
            lambda: run_portfolio_pacing(request, reader, gateway),
        )
        logger.info(
            f"Portfolio snapshot ({'cached' if hit else 'computed'}): "
            f"{snapshot.totals.campaignCount} campaigns, {snapshot.totals.lineItemCount} line items"
        )
        return round_for_presentation(snapshot)

    except PacingError as e:
        logger.warning(f"Portfolio pacing failed: {e.kind}: {e.message}")
        raise _pacing_http_error(e)
    except Exception:
        logger.exception("Error computing portfolio pacing")
        raise _internal_error()


@router.get("/campaigns/{campaign_id}/expected-spend-to-date", response_model=ExpectedSpendResponse)
async def expected_spend_to_date(
    campaign_id: str,
    reader: PlanRepositoryDep,
    as_of: Optional[str] = Query(None, alias="asOf", description="ISO as-of date (default: today)"),
) -> ExpectedSpendResponse:
    """Expected spend to date from the campaign's month-bucketed delivery schedule."""
    try:
        as_of_date = parse_request_date(as_of, 'asOf')
        response = await campaign_expected_spend_to_date(campaign_id, reader, as_of=as_of_date)
        return round_for_presentation(response)

    except PacingError as e:
        logger.warning(f"Expected spend failed for campaign {campaign_id}: {e.kind}: {e.message}")
        raise _pacing_http_error(e)
    except Exception:
        logger.exception(f"Error computing expected spend for campaign {campaign_id}")
        raise _internal_error()
