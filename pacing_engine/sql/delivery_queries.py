"""
BigQuery SQL for delivery facts.

Social and programmatic delivery comes from the media fact table; search
delivery comes from its own fact table (see get_search_delivery_query) and is
returned in the same column layout.

The media fact table holds one row per (line item, entity, channel, day):

    line_item_id STRING, date DATE, channel STRING,
    amount_spent NUMERIC, impressions INT64, clicks INT64,
    results INT64, video_3s_views INT64

The search fact table holds one row per (line item, keyword, day):

    line_item_id STRING, date_day DATE, amount_spent NUMERIC,
    impressions INT64, clicks INT64, conversions FLOAT64

Identifiers are compared trimmed and lower-cased on both sides. All values
are bound as query parameters (@line_item_ids, @start_date, @end_date); only
the table name and the integer row limit are interpolated.
"""


# Metric columns summed by every delivery query, in output order
DELIVERY_METRIC_COLUMNS = {
    'amount_spent': 'amount_spent',
    'impressions': 'impressions',
    'clicks': 'clicks',
    'results': 'results',
    'video_3s_views': 'video_3s_views',
}


def _metric_sums(alias: str = 'f') -> str:
    return ",\n        ".join(
        f"SUM(COALESCE({alias}.{source}, 0)) AS {target}"
        for source, target in DELIVERY_METRIC_COLUMNS.items()
    )


def get_bulk_delivery_query(table: str, row_limit: int) -> str:
    """
    Delivery rows per (line item, date, raw channel label) for a window.

    The end date is bounded by the latest loaded date for the requested ids
    (max-date CTE) so a window reaching past the last warehouse load does not
    scan empty partitions. Rows come newest first so that, if the row limit
    truncates the result, the most recent days are kept.

    Args:
        table: Fully-qualified fact table.
        row_limit: Maximum rows returned.

    Returns:
        str: Standard SQL with @line_item_ids, @start_date, @end_date.
    """
    return f"""
    -- Bulk pacing delivery
    WITH bounds AS (
        SELECT LEAST(@end_date, MAX(date)) AS end_date
        FROM `{table}`
        WHERE LOWER(TRIM(line_item_id)) IN UNNEST(@line_item_ids)
          AND date >= @start_date
    )
    SELECT
        LOWER(TRIM(f.line_item_id)) AS line_item_id,
        f.date AS date,
        LOWER(TRIM(f.channel)) AS channel,
        {_metric_sums('f')}
    FROM `{table}` AS f
    CROSS JOIN bounds AS b
    WHERE LOWER(TRIM(f.line_item_id)) IN UNNEST(@line_item_ids)
      AND f.date >= @start_date
      AND f.date <= COALESCE(b.end_date, @end_date)
    GROUP BY line_item_id, date, channel
    ORDER BY date DESC, channel ASC, line_item_id ASC
    LIMIT {int(row_limit)}
    """


def get_daily_totals_query(table: str) -> str:
    """
    Delivery summed across channels per (line item, day).

    Used by the portfolio view; callers chunk @line_item_ids so no row limit
    is applied.

    Returns:
        str: Standard SQL with @line_item_ids, @start_date, @end_date.
    """
    return f"""
    -- Portfolio daily delivery
    SELECT
        LOWER(TRIM(f.line_item_id)) AS line_item_id,
        f.date AS date,
        {_metric_sums('f')}
    FROM `{table}` AS f
    WHERE LOWER(TRIM(f.line_item_id)) IN UNNEST(@line_item_ids)
      AND f.date BETWEEN @start_date AND @end_date
    GROUP BY line_item_id, date
    ORDER BY line_item_id ASC, date ASC
    """


def get_zero_row_probe_query(table: str, sample_limit: int = 10) -> str:
    """
    Diagnostic query run when a window returns no rows.

    Lists which of the ids have any data at all, with their channel labels and
    loaded date range, to tell "data outside the window" apart from "no data
    for these ids".

    Returns:
        str: Standard SQL with @line_item_ids.
    """
    return f"""
    -- Zero-row probe
    SELECT
        LOWER(TRIM(line_item_id)) AS line_item_id,
        LOWER(TRIM(channel)) AS channel,
        MIN(date) AS first_date,
        MAX(date) AS last_date
    FROM `{table}`
    WHERE LOWER(TRIM(line_item_id)) IN UNNEST(@line_item_ids)
    GROUP BY line_item_id, channel
    ORDER BY last_date DESC
    LIMIT {int(sample_limit)}
    """


# =============================================================================
# Search delivery
# =============================================================================

# Search fact column -> common delivery column. Search has no video views and
# reports conversions where the media fact reports results.
SEARCH_METRIC_COLUMNS = {
    'amount_spent': 'amount_spent',
    'impressions': 'impressions',
    'clicks': 'clicks',
    'conversions': 'results',
}


def _search_metric_sums(alias: str = 's') -> str:
    sums = [
        f"SUM(COALESCE({alias}.{source}, 0)) AS {target}"
        for source, target in SEARCH_METRIC_COLUMNS.items()
    ]
    sums.append("0 AS video_3s_views")
    return ",\n        ".join(sums)


def get_search_delivery_query(table: str, row_limit: int) -> str:
    """
    Search delivery rows per (line item, day), shaped like the bulk query.

    The search fact is keyed by line item and date_day only; every row is
    tagged with the 'search' channel. Newest first under the row limit, same
    as get_bulk_delivery_query.

    Returns:
        str: Standard SQL with @line_item_ids, @start_date, @end_date.
    """
    return f"""
    -- Bulk pacing delivery (search)
    SELECT
        LOWER(TRIM(s.line_item_id)) AS line_item_id,
        s.date_day AS date,
        'search' AS channel,
        {_search_metric_sums('s')}
    FROM `{table}` AS s
    WHERE LOWER(TRIM(s.line_item_id)) IN UNNEST(@line_item_ids)
      AND s.date_day BETWEEN @start_date AND @end_date
    GROUP BY line_item_id, date
    ORDER BY date DESC, line_item_id ASC
    LIMIT {int(row_limit)}
    """


def get_search_daily_totals_query(table: str) -> str:
    """
    Search delivery per (line item, day) for the portfolio view.

    Returns:
        str: Standard SQL with @line_item_ids, @start_date, @end_date.
    """
    return f"""
    -- Portfolio daily delivery (search)
    SELECT
        LOWER(TRIM(s.line_item_id)) AS line_item_id,
        s.date_day AS date,
        {_search_metric_sums('s')}
    FROM `{table}` AS s
    WHERE LOWER(TRIM(s.line_item_id)) IN UNNEST(@line_item_ids)
      AND s.date_day BETWEEN @start_date AND @end_date
    GROUP BY line_item_id, date
    ORDER BY line_item_id ASC, date ASC
    """
