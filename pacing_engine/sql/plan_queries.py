"""
PostgreSQL queries for the media plan store (read-only).

Plans are versioned per campaign (mba_number); only the highest version of
each campaign is current. Line items live in one table per channel group and
reference their plan version by (mba_number, version_number).
"""

from typing import Dict

from pacing_engine.models import ChannelGroup


LINE_ITEM_TABLES: Dict[ChannelGroup, str] = {
    ChannelGroup.SOCIAL: 'media_plan_social_line_items',
    ChannelGroup.PROG_DISPLAY: 'media_plan_prog_display_line_items',
    ChannelGroup.PROG_VIDEO: 'media_plan_prog_video_line_items',
    ChannelGroup.SEARCH: 'media_plan_search_line_items',
}

_LATEST_VERSIONS_CTE = """
    WITH latest AS (
        SELECT DISTINCT ON (mba_number)
            mba_number,
            version_number,
            client_name,
            campaign_name,
            campaign_start_date,
            campaign_end_date,
            delivery_schedule
        FROM media_plan_versions
        {where}
        ORDER BY mba_number, version_number DESC
    )
"""


def get_latest_versions_query(filter_campaign: bool = False, filter_clients: bool = False) -> str:
    """
    Latest plan version per campaign.

    Args:
        filter_campaign: Restrict to mba_number = $1.
        filter_clients: Restrict to client slugs in $1 (text[]), matched on the
            slugified client name.

    Returns:
        str: PostgreSQL query.
    """
    return _LATEST_VERSIONS_CTE.format(where=_version_filter(filter_campaign, filter_clients)) + """
    SELECT * FROM latest
    ORDER BY mba_number
    """


def get_line_items_query(
    channel_group: ChannelGroup,
    filter_campaign: bool = False,
    filter_clients: bool = False,
) -> str:
    """
    Line items of the latest plan versions for one channel group.

    Args:
        channel_group: Selects the line item table.
        filter_campaign: Restrict to mba_number = $1.
        filter_clients: Restrict to client slugs in $1 (text[]).

    Returns:
        str: PostgreSQL query returning li.* plus client_name/campaign_name.
    """
    table = LINE_ITEM_TABLES[channel_group]
    return _LATEST_VERSIONS_CTE.format(where=_version_filter(filter_campaign, filter_clients)) + f"""
    SELECT
        li.*,
        latest.client_name,
        latest.campaign_name
    FROM {table} AS li
    JOIN latest
      ON latest.mba_number = li.mba_number
     AND latest.version_number = li.version_number
    ORDER BY li.mba_number, li.line_item_id
    """


def _version_filter(filter_campaign: bool, filter_clients: bool) -> str:
    if filter_campaign:
        return "WHERE mba_number = $1"
    if filter_clients:
        return (
            "WHERE trim(both '-' from regexp_replace(lower(client_name), '[^a-z0-9]+', '-', 'g'))"
            " = ANY($1::text[])"
        )
    return ""
