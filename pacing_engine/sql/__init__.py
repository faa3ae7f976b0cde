"""
SQL query module for the pacing engine.

Submodules:
    delivery_queries: BigQuery delivery fact queries (bulk pacing rows,
                      portfolio daily totals, zero-row probe,
                      search fact variants).
    plan_queries: PostgreSQL queries reading the current media plan versions
                  and their line items.

Example usage:
    from pacing_engine.sql import get_bulk_delivery_query

    sql = get_bulk_delivery_query('project.dataset.delivery_fact', row_limit=50000)
"""

from pacing_engine.sql.delivery_queries import (
    get_bulk_delivery_query,
    get_daily_totals_query,
    get_zero_row_probe_query,
    get_search_delivery_query,
    get_search_daily_totals_query,
    DELIVERY_METRIC_COLUMNS,
    SEARCH_METRIC_COLUMNS,
)

from pacing_engine.sql.plan_queries import (
    get_latest_versions_query,
    get_line_items_query,
    LINE_ITEM_TABLES,
)

__all__ = [
    'get_bulk_delivery_query',
    'get_daily_totals_query',
    'get_zero_row_probe_query',
    'get_search_delivery_query',
    'get_search_daily_totals_query',
    'DELIVERY_METRIC_COLUMNS',
    'SEARCH_METRIC_COLUMNS',
    'get_latest_versions_query',
    'get_line_items_query',
    'LINE_ITEM_TABLES',
]
