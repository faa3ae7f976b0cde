"""
Media plan reader.

Read-only access to the media plan store (PostgreSQL via asyncpg). Loads the
current plan version of each campaign and its line items across every
channel group and hands the raw rows to the schedule normaliser.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pacing_engine.core.database import execute_query
from pacing_engine.models import CampaignDeliverySchedule, ChannelGroup, LineItemSchedule
from pacing_engine.services.schedule import (
    campaign_bounds,
    normalize_delivery_schedule,
    normalize_plan,
    slugify,
)
from pacing_engine.sql import LINE_ITEM_TABLES, get_latest_versions_query, get_line_items_query

logger = logging.getLogger(__name__)


class PlanRepository:
    """
    Loads planned schedules for campaigns and portfolios.

    All reads go through pacing_engine.core.database.execute_query so tests can
    patch a single seam.
    """

    async def _fetch_group_rows(self, filter_campaign: bool, filter_clients: bool, *args: Any) -> Dict[ChannelGroup, List[Mapping[str, Any]]]:
        rows_by_group: Dict[ChannelGroup, List[Mapping[str, Any]]] = {}
        for group in LINE_ITEM_TABLES:
            query = get_line_items_query(group, filter_campaign=filter_campaign, filter_clients=filter_clients)
            records = await execute_query(query, *args)
            rows_by_group[group] = [dict(record) for record in records]
        return rows_by_group

    async def get_campaign_line_items(self, campaign_id: str) -> List[LineItemSchedule]:
        """
        Current line items of one campaign.

        Args:
            campaign_id: Campaign (mba_number) identifier.

        Returns:
            Normalised schedules ordered by line item id.
        """
        versions = await execute_query(get_latest_versions_query(filter_campaign=True), campaign_id)
        rows_by_group = await self._fetch_group_rows(True, False, campaign_id)
        schedules = normalize_plan(rows_by_group, [dict(v) for v in versions])
        logger.info(f"Loaded {len(schedules)} planned line items for campaign {campaign_id}")
        return schedules

    async def get_portfolio_line_items(self, client_slugs: Optional[Sequence[str]] = None) -> List[LineItemSchedule]:
        """
        Current line items of every campaign, optionally restricted to clients.

        Args:
            client_slugs: Client slugs to include; None loads all clients.
        """
        if client_slugs:
            slugs = sorted({slugify(s) for s in client_slugs})
            versions = await execute_query(get_latest_versions_query(filter_clients=True), slugs)
            rows_by_group = await self._fetch_group_rows(False, True, slugs)
        else:
            versions = await execute_query(get_latest_versions_query())
            rows_by_group = await self._fetch_group_rows(False, False)

        schedules = normalize_plan(rows_by_group, [dict(v) for v in versions])
        logger.info(f"Loaded {len(schedules)} planned line items for portfolio")
        return schedules

    async def get_delivery_schedule(self, campaign_id: str) -> Optional[CampaignDeliverySchedule]:
        """Month-bucketed delivery schedule of a campaign's current version."""
        versions = await execute_query(get_latest_versions_query(filter_campaign=True), campaign_id)
        if not versions:
            return None

        version = dict(versions[0])
        start, end = campaign_bounds(version.get('campaign_start_date'), version.get('campaign_end_date'))
        return CampaignDeliverySchedule(
            campaignId=campaign_id,
            campaignStart=start,
            campaignEnd=end,
            months=normalize_delivery_schedule(version.get('delivery_schedule')),
        )
