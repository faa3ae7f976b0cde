"""
Portfolio rollup service.

Groups line item PacingResults by (client, campaign), sums spend figures at
campaign, client and portfolio level and classifies each campaign on its
summed actual vs summed expected (never an average of child statuses).

Portfolio totals:
- plannedTotal: booked spend of every line item
- expectedToDate / spentToDate: summed expected and actual spend
- underCount / onCount / overCount: campaigns per status bucket

Aggregation is order-independent: sums go through math.fsum (exactly rounded
regardless of input order) and all outputs are sorted by key. Nothing is
rounded here; presentation rounding happens when responses are built.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from pacing_engine.models import (
    CampaignSummary,
    ClientSummary,
    DateWindow,
    PaceStatus,
    PacingResult,
    PortfolioSnapshot,
    PortfolioTotals,
)
from pacing_engine.services.classification import classify_pace, pace_ratio

logger = logging.getLogger(__name__)


@dataclass
class _CampaignAccumulator:
    client_slug: str
    campaign_id: str
    campaign_name: Optional[str] = None
    line_items: List[PacingResult] = field(default_factory=list)

    def add(self, result: PacingResult) -> None:
        self.line_items.append(result)
        if not self.campaign_name and result.campaignName:
            self.campaign_name = result.campaignName

    def summarize(self) -> CampaignSummary:
        spend = math.fsum(r.spendToDate for r in self.line_items)
        planned = math.fsum(r.plannedSpendToDate for r in self.line_items)
        expected = math.fsum(r.expectedSpendToDate for r in self.line_items)
        return CampaignSummary(
            clientSlug=self.client_slug,
            campaignId=self.campaign_id,
            campaignName=self.campaign_name,
            spendToDate=spend,
            plannedSpendToDate=planned,
            expectedSpendToDate=expected,
            spendPaceStatus=classify_pace(spend, expected),
            spendPacePct=pace_ratio(spend, expected),
            lineItems=sorted(self.line_items, key=lambda r: r.lineItemId),
        )


def summarize_campaigns(results: Iterable[PacingResult]) -> List[CampaignSummary]:
    """
    Group line item results by (clientSlug, campaignId) and summarise each group.

    Returns:
        CampaignSummary list sorted by (clientSlug, campaignId).
    """
    groups: Dict[Tuple[str, str], _CampaignAccumulator] = {}
    for result in results:
        key = (result.clientSlug, result.campaignId)
        if key not in groups:
            groups[key] = _CampaignAccumulator(client_slug=key[0], campaign_id=key[1])
        groups[key].add(result)

    return [groups[key].summarize() for key in sorted(groups)]


def aggregate_portfolio(
    results: Iterable[PacingResult],
    as_of: Optional[date] = None,
    data_as_at: Optional[date] = None,
    window: Optional[DateWindow] = None,
) -> PortfolioSnapshot:
    """
    Build the nested client → campaign → line item snapshot with totals.

    Args:
        results: Line item pacing results (any order).
        as_of: Date expected values were computed for.
        data_as_at: Latest delivered date in the warehouse window.
        window: Delivery window the actuals cover.

    Returns:
        PortfolioSnapshot
    """
    results = list(results)
    campaigns = summarize_campaigns(results)

    by_client: Dict[str, List[CampaignSummary]] = {}
    for campaign in campaigns:
        by_client.setdefault(campaign.clientSlug, []).append(campaign)

    clients = [
        ClientSummary(
            clientSlug=slug,
            spendToDate=math.fsum(c.spendToDate for c in items),
            plannedSpendToDate=math.fsum(c.plannedSpendToDate for c in items),
            expectedSpendToDate=math.fsum(c.expectedSpendToDate for c in items),
            campaigns=items,
        )
        for slug, items in sorted(by_client.items())
    ]

    status_counts = {status: 0 for status in PaceStatus}
    for campaign in campaigns:
        status_counts[campaign.spendPaceStatus] += 1

    totals = PortfolioTotals(
        plannedTotal=math.fsum(r.plannedSpendToDate for r in results),
        expectedToDate=math.fsum(r.expectedSpendToDate for r in results),
        spentToDate=math.fsum(r.spendToDate for r in results),
        underCount=status_counts[PaceStatus.UNDER],
        onCount=status_counts[PaceStatus.ON],
        overCount=status_counts[PaceStatus.OVER],
        campaignCount=len(campaigns),
        lineItemCount=len(results),
    )

    logger.info(
        f"Portfolio rollup: {totals.lineItemCount} line items, {totals.campaignCount} campaigns "
        f"(under={totals.underCount}, on={totals.onCount}, over={totals.overCount})"
    )

    return PortfolioSnapshot(
        asOfDate=as_of,
        dataAsAt=data_as_at,
        window=window,
        clients=clients,
        totals=totals,
    )
