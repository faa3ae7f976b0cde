"""
Delivery Data Gateway

Pulls actual delivery rows for a set of line items and a date window from the
BigQuery delivery warehouse.

Request handling:
- Identifiers are trimmed, lower-cased, de-duplicated and sorted; at most
  `pacing_max_ids` are queried (excess dropped with a warning)
- The window is clamped: end defaults to business-yesterday unless the whole
  window is already in the past, and start is no earlier than end minus
  `pacing_max_range_days`
- Warehouse calls are retried on transient failures (linear backoff) inside an
  overall deadline; the deadline or an explicit cancel signal raises
  WarehouseTimeoutError and cancels the running job

Result handling:
- The query returns newest rows first with a row cap; hitting the cap marks
  the result truncated (soft warning) and rows are re-sorted ascending by
  (date, channel, lineItemId)
- Vendor channel labels are mapped onto the canonical channel tags; rows with
  unrecognised channels are dropped and counted
- Search line items are read from the search fact table (tagged SEARCH); the
  media and search queries share one deadline
- Zero rows for a non-empty id set is logged as a diagnostic (with an optional
  probe query in debug mode)
"""

import asyncio
import concurrent.futures
import logging
import re
import time
from datetime import date
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

import pandas as pd
import requests

from pacing_engine.core.clock import business_today, to_business_date
from pacing_engine.core.config import Settings, get_settings
from pacing_engine.core.errors import QueryError, ValidationError, WarehouseTimeoutError
from pacing_engine.core.retry import retry_with_linear_backoff
from pacing_engine.core.warehouse import (
    TRANSIENT_ERRORS,
    WAREHOUSE_ERRORS,
    BigQueryWarehouse,
    date_param,
    string_array_param,
)
from pacing_engine.models import (
    DailyDeliveryTotal,
    DateWindow,
    DeliveryChannel,
    DeliveryFetchResult,
    DeliveryRow,
    DeliveryTotals,
    DeliveryWarning,
    PortfolioDelivery,
)
from pacing_engine.services.schedule import normalize_identifier
from pacing_engine.services.windows import clamp_date_range
from pacing_engine.sql import (
    get_bulk_delivery_query,
    get_daily_totals_query,
    get_search_daily_totals_query,
    get_search_delivery_query,
    get_zero_row_probe_query,
)

logger = logging.getLogger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

METRIC_COLUMNS: List[str] = ['amount_spent', 'impressions', 'clicks', 'results', 'video_3s_views']

# DataFrame column -> DeliveryRow / DeliveryTotals field
METRIC_FIELDS: Dict[str, str] = {
    'amount_spent': 'amountSpent',
    'impressions': 'impressions',
    'clicks': 'clicks',
    'results': 'results',
    'video_3s_views': 'video3sViews',
}

META_TOKENS = ('meta', 'facebook', 'instagram')

_SEPARATORS = re.compile(r'[\s_\-/]+')


# =============================================================================
# Input Normalisation
# =============================================================================

def normalize_line_item_ids(line_item_ids: Optional[Iterable[Any]], max_ids: Optional[int] = None) -> Tuple[List[str], bool]:
    """
    Trim, lower-case, de-duplicate and sort identifiers.

    Args:
        line_item_ids: Raw identifiers.
        max_ids: Optional cap on the number returned.

    Returns:
        Tuple of (identifiers, capped) where capped is True when ids were dropped.

    Example:
        >>> normalize_line_item_ids(["AB1", "ab1", " ab1 "])
        (['ab1'], False)
    """
    unique = set()
    for value in line_item_ids or []:
        normalized = normalize_identifier(value)
        if normalized:
            unique.add(normalized)
    ids = sorted(unique)
    if max_ids is not None and len(ids) > max_ids:
        return ids[:max_ids], True
    return ids, False


def normalize_channel(label: Any) -> Optional[DeliveryChannel]:
    """
    Map a vendor channel label onto a canonical channel tag.

    Examples:
        "Meta Ads" -> META, "TikTok" -> TIKTOK,
        "Programmatic - Display" -> PROGRAMMATIC_DISPLAY,
        "programmatic video (CTV)" -> PROGRAMMATIC_VIDEO, "Google Search" -> SEARCH,
        "Linear TV" -> None
    """
    if not isinstance(label, str):
        return None
    text = _SEPARATORS.sub(' ', label.strip().lower())
    compact = text.replace(' ', '')

    if any(token in text for token in META_TOKENS):
        return DeliveryChannel.META
    if 'tiktok' in compact:
        return DeliveryChannel.TIKTOK
    if 'programmatic' in text and 'display' in text:
        return DeliveryChannel.PROGRAMMATIC_DISPLAY
    if 'programmatic' in text and 'video' in text:
        return DeliveryChannel.PROGRAMMATIC_VIDEO
    if 'search' in text:
        return DeliveryChannel.SEARCH
    return None


def split_search_ids(ids: Sequence[str], search_line_item_ids: Optional[Iterable[Any]]) -> Tuple[List[str], List[str]]:
    """
    Split normalised ids into (media fact ids, search fact ids).

    Only ids present in `ids` are routed to search; order is preserved.
    """
    search_wanted = set(normalize_line_item_ids(search_line_item_ids)[0])
    media_ids = [i for i in ids if i not in search_wanted]
    search_ids = [i for i in ids if i in search_wanted]
    return media_ids, search_ids


def _chunked(ids: Sequence[str], size: int) -> List[List[str]]:
    size = max(size, 1)
    return [list(ids[i:i + size]) for i in range(0, len(ids), size)]


def _window_params(ids: Sequence[str], window: DateWindow) -> List[Any]:
    return [
        string_array_param('line_item_ids', ids),
        date_param('start_date', window.startDate),
        date_param('end_date', window.endDate),
    ]


def _channel_tag(label: Any) -> Optional[str]:
    channel = normalize_channel(label)
    return channel.value if channel is not None else None


# =============================================================================
# Deadline / Cancellation
# =============================================================================

async def await_with_deadline(
    awaitable: Awaitable[Any],
    deadline_seconds: Optional[float],
    cancel_event: Optional[asyncio.Event] = None,
    request_id: Optional[str] = None,
) -> Any:
    """
    Await `awaitable` until it finishes, the deadline passes or cancel_event is set.

    On deadline or cancel the inner task is cancelled (which cancels the
    warehouse job) and WarehouseTimeoutError is raised.
    """
    task = asyncio.ensure_future(awaitable)
    waiters = {task}
    cancel_waiter = None
    if cancel_event is not None:
        cancel_waiter = asyncio.ensure_future(cancel_event.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(waiters, timeout=deadline_seconds, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        if cancel_waiter is not None:
            cancel_waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)

    if cancel_event is not None and cancel_event.is_set():
        message = 'Delivery fetch was cancelled'
    else:
        message = f"Delivery fetch exceeded {deadline_seconds}s"
    logger.warning(f"[{request_id}] {message}")
    raise WarehouseTimeoutError(message, deadline_seconds=deadline_seconds, request_id=request_id)


# =============================================================================
# Gateway
# =============================================================================

class DeliveryDataGateway:
    """
    Fetches delivery actuals from the warehouse.

    Args:
        warehouse: BigQuery facade (or any object with a compatible
            query_dataframe coroutine).
        settings: Limits, table name and timezone; defaults to get_settings().
        today_provider: Returns business-timezone today; injectable for tests.
    """

    def __init__(
        self,
        warehouse: BigQueryWarehouse,
        settings: Optional[Settings] = None,
        today_provider: Optional[Callable[[], date]] = None,
    ):
        self._warehouse = warehouse
        self._settings = settings or get_settings()
        self._today_provider = today_provider or (
            lambda: business_today(tz_name=self._settings.business_timezone)
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    def today(self) -> date:
        return self._today_provider()

    def clamp_window(self, start: Optional[date], end: Optional[date]) -> DateWindow:
        """Clamp a requested window with the configured look-back cap."""
        return clamp_date_range(
            start,
            end,
            today=self.today(),
            max_range_days=self._settings.pacing_max_range_days,
        )

    # -------------------------------------------------------------------------
    # Bulk rows
    # -------------------------------------------------------------------------

    async def fetch(
        self,
        line_item_ids: Sequence[Any],
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        cancel_event: Optional[asyncio.Event] = None,
        request_id: Optional[str] = None,
        search_line_item_ids: Optional[Iterable[Any]] = None,
        window: Optional[DateWindow] = None,
    ) -> DeliveryFetchResult:
        """
        Fetch delivery rows per (line item, date, channel) for a window.

        Args:
            line_item_ids: Raw line item identifiers (at least one).
            start_date: Requested window start.
            end_date: Requested window end.
            cancel_event: Setting it aborts the fetch with WarehouseTimeoutError.
            request_id: Correlation id; generated when omitted.
            search_line_item_ids: Ids (among line_item_ids) whose delivery
                lives in the search fact table. Both tables are queried
                concurrently under one deadline when both are needed.
            window: Window already clamped by clamp_window; when given,
                start_date/end_date are ignored and today is not re-read.

        Returns:
            DeliveryFetchResult with ascending rows, count and truncation flag
            (truncated when either query hit the row cap).

        Raises:
            ValidationError: No usable identifiers.
            WarehouseTimeoutError: Deadline exceeded or cancelled.
            QueryError: Warehouse failure after retries.
        """
        request_id = request_id or uuid4().hex[:8]
        settings = self._settings
        started = time.perf_counter()

        ids, capped = normalize_line_item_ids(line_item_ids, settings.pacing_max_ids)
        if not ids:
            raise ValidationError('lineItemIds must contain at least one identifier', field='lineItemIds', request_id=request_id)

        warnings: List[DeliveryWarning] = []
        if capped:
            warnings.append(DeliveryWarning.IDS_CAPPED)
            logger.warning(f"[{request_id}] Line item ids capped at {settings.pacing_max_ids}")

        if window is None:
            window = self.clamp_window(start_date, end_date)
        media_ids, search_ids = split_search_ids(ids, search_line_item_ids)
        logger.info(
            f"[{request_id}] Delivery fetch: {len(ids)} line items ({len(search_ids)} search), "
            f"{window.startDate.isoformat()}..{window.endDate.isoformat()}"
        )

        if window.startDate > window.endDate:
            logger.warning(f"[{request_id}] Empty window after clamping; no query issued")
            return DeliveryFetchResult(
                window=window,
                lineItemIds=ids,
                warnings=warnings + [DeliveryWarning.ZERO_ROWS],
                requestId=request_id,
            )

        row_limit = settings.pacing_row_limit
        queries = []
        if media_ids:
            queries.append(('bulk_pacing', get_bulk_delivery_query(settings.pacing_table, row_limit), media_ids))
        if search_ids:
            queries.append(
                ('bulk_pacing_search', get_search_delivery_query(settings.pacing_search_table, row_limit), search_ids)
            )
        if settings.debug_pacing:
            for label, sql, _ in queries:
                logger.debug(f"[{request_id}] {label} SQL: {' '.join(sql.split())[:200]}")

        query_started = time.perf_counter()
        frames = await self._guarded(
            asyncio.gather(*(
                self._execute_with_retry(sql, _window_params(chunk, window), label, request_id)
                for label, sql, chunk in queries
            )),
            'bulk_pacing',
            request_id,
            cancel_event,
        )
        query_ms = (time.perf_counter() - query_started) * 1000

        raw_count = sum(len(f) for f in frames)
        truncated = any(len(f) >= row_limit for f in frames)
        if truncated:
            warnings.append(DeliveryWarning.TRUNCATED)
            logger.warning(
                f"[{request_id}] Result hit the {row_limit} row cap; older rows were dropped"
            )

        df = frames[0] if len(frames) == 1 else pd.concat(frames, ignore_index=True)
        rows, unknown_channels = self._rows_from_frame(df)
        if unknown_channels:
            warnings.append(DeliveryWarning.UNKNOWN_CHANNELS)
            logger.warning(f"[{request_id}] Dropped rows with unrecognised channels: {unknown_channels}")

        if not rows:
            warnings.append(DeliveryWarning.ZERO_ROWS)
            await self._log_zero_rows(ids, media_ids, window, request_id, cancel_event)

        channel_counts = pd.Series([r.channel.value for r in rows], dtype=object).value_counts().to_dict()
        logger.info(
            f"[{request_id}] Delivery fetch done: {len(rows)} rows (raw {raw_count}), "
            f"query {query_ms:.0f}ms, total {(time.perf_counter() - started) * 1000:.0f}ms, "
            f"channels={channel_counts}, avgRowsPerLineItem={len(rows) / len(ids):.1f}"
        )

        return DeliveryFetchResult(
            rows=rows,
            count=len(rows),
            truncated=truncated,
            window=window,
            lineItemIds=ids,
            warnings=warnings,
            unknownChannels=unknown_channels,
            requestId=request_id,
        )

    # -------------------------------------------------------------------------
    # Portfolio daily totals
    # -------------------------------------------------------------------------

    async def fetch_daily_totals(
        self,
        line_item_ids: Sequence[Any],
        window: DateWindow,
        cancel_event: Optional[asyncio.Event] = None,
        request_id: Optional[str] = None,
        search_line_item_ids: Optional[Iterable[Any]] = None,
    ) -> PortfolioDelivery:
        """
        Daily delivery per line item (summed across channels) for a window.

        Identifiers are queried in chunks of `pacing_max_ids`; the deadline
        covers all chunks together. Ids listed in search_line_item_ids are
        read from the search fact table, the rest from the media fact table.

        Returns:
            PortfolioDelivery with daily rows, per line item totals and
            dataAsAt (latest delivered date, else the window end).
        """
        request_id = request_id or uuid4().hex[:8]
        ids, _ = normalize_line_item_ids(line_item_ids)
        if not ids or window.startDate > window.endDate:
            return PortfolioDelivery(window=window, dataAsAt=window.endDate, lineItemIds=ids, requestId=request_id)

        settings = self._settings
        media_ids, search_ids = split_search_ids(ids, search_line_item_ids)
        media_sql = get_daily_totals_query(settings.pacing_table)
        search_sql = get_search_daily_totals_query(settings.pacing_search_table)
        chunks = (
            [('portfolio_daily', media_sql, chunk) for chunk in _chunked(media_ids, settings.pacing_max_ids)]
            + [('portfolio_daily_search', search_sql, chunk) for chunk in _chunked(search_ids, settings.pacing_max_ids)]
        )

        async def _run_chunks() -> List[pd.DataFrame]:
            frames = []
            for label, sql, chunk in chunks:
                frames.append(await self._execute_with_retry(sql, _window_params(chunk, window), label, request_id))
            return frames

        frames = await self._guarded(_run_chunks(), 'portfolio_daily', request_id, cancel_event)

        daily = self._daily_from_frames(frames)
        totals: Dict[str, DeliveryTotals] = {}
        for line_item_id, items in _group_by_line_item(daily).items():
            totals[line_item_id] = DeliveryTotals(
                **{field: sum(getattr(d, field) for d in items) for field in METRIC_FIELDS.values()}
            )
        data_as_at = max((d.date for d in daily), default=window.endDate)

        logger.info(
            f"[{request_id}] Portfolio delivery: {len(ids)} line items in {len(chunks)} chunks, "
            f"{len(daily)} daily rows, dataAsAt={data_as_at.isoformat()}"
        )
        return PortfolioDelivery(
            daily=daily,
            totals=totals,
            dataAsAt=data_as_at,
            window=window,
            lineItemIds=ids,
            requestId=request_id,
        )

    # -------------------------------------------------------------------------
    # Execution helpers
    # -------------------------------------------------------------------------

    async def _execute_with_retry(
        self,
        sql: str,
        parameters: Sequence[Any],
        label: str,
        request_id: str,
    ) -> pd.DataFrame:
        settings = self._settings

        async def _attempt() -> pd.DataFrame:
            return await self._warehouse.query_dataframe(
                sql,
                parameters,
                timeout=settings.pacing_query_timeout_seconds,
                labels={'query_tag': label},
            )

        return await retry_with_linear_backoff(
            _attempt,
            max_attempts=settings.pacing_retry_attempts,
            delay=settings.pacing_retry_backoff_seconds,
            retry_on=TRANSIENT_ERRORS,
            label=label,
            request_id=request_id,
        )

    async def _guarded(
        self,
        awaitable: Awaitable[Any],
        label: str,
        request_id: str,
        cancel_event: Optional[asyncio.Event],
    ) -> Any:
        """Apply the fetch deadline and map warehouse failures onto pacing errors."""
        deadline = self._settings.pacing_query_timeout_seconds
        try:
            return await await_with_deadline(awaitable, deadline, cancel_event, request_id)
        except WarehouseTimeoutError:
            raise
        except (asyncio.TimeoutError, TimeoutError, concurrent.futures.TimeoutError, requests.exceptions.Timeout) as e:
            # job.result(timeout=...) gave up before our own deadline fired
            logger.warning(f"[{request_id}] [bigquery] {label} timed out: {e}")
            raise WarehouseTimeoutError(deadline_seconds=deadline, request_id=request_id) from e
        except WAREHOUSE_ERRORS as e:
            logger.error(f"[{request_id}] [bigquery] {label} failed: {e}")
            raise QueryError(attempts=self._settings.pacing_retry_attempts, request_id=request_id) from e

    async def _execute(
        self,
        sql: str,
        parameters: Sequence[Any],
        label: str,
        request_id: str,
        cancel_event: Optional[asyncio.Event],
    ) -> pd.DataFrame:
        return await self._guarded(
            self._execute_with_retry(sql, parameters, label, request_id),
            label,
            request_id,
            cancel_event,
        )

    async def _log_zero_rows(
        self,
        ids: List[str],
        probe_ids: List[str],
        window: DateWindow,
        request_id: str,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        """Log an empty result; in debug mode probe the media fact for probe_ids."""
        logger.warning(
            f"[{request_id}] Zero delivery rows for {len(ids)} line items "
            f"({window.startDate.isoformat()}..{window.endDate.isoformat()}), sample={ids[:5]}"
        )
        if not self._settings.debug_pacing or not probe_ids:
            return

        try:
            probe = await self._execute(
                get_zero_row_probe_query(self._settings.pacing_table),
                [string_array_param('line_item_ids', probe_ids)],
                'zero_row_probe',
                request_id,
                cancel_event,
            )
        except QueryError as e:
            logger.warning(f"[{request_id}] Zero-row probe failed: {e}")
            return

        if probe.empty:
            logger.warning(f"[{request_id}] Probe: no delivery data exists for these line items")
        else:
            logger.warning(
                f"[{request_id}] Probe: data exists outside the window: "
                f"{probe.to_dict(orient='records')}"
            )

    # -------------------------------------------------------------------------
    # Frame conversion
    # -------------------------------------------------------------------------

    @staticmethod
    def _prepare_frame(df: pd.DataFrame) -> pd.DataFrame:
        frame = df.copy()
        frame.columns = [str(c).lower() for c in frame.columns]
        for column in METRIC_COLUMNS:
            if column not in frame.columns:
                frame[column] = 0.0
            frame[column] = pd.to_numeric(frame[column], errors='coerce').fillna(0).clip(lower=0).astype(float)
        frame['line_item_id'] = frame['line_item_id'].map(normalize_identifier)
        frame['date'] = frame['date'].map(to_business_date)
        return frame.dropna(subset=['line_item_id', 'date'])

    def _rows_from_frame(self, df: pd.DataFrame) -> Tuple[List[DeliveryRow], Dict[str, int]]:
        """Normalise channels, drop unknown ones and return ascending rows."""
        if df is None or df.empty:
            return [], {}

        frame = self._prepare_frame(df)
        frame['channel_tag'] = frame['channel'].map(_channel_tag)
        unknown_mask = frame['channel_tag'].isna()
        unknown_channels = (
            frame.loc[unknown_mask, 'channel'].fillna('(missing)').astype(str).value_counts().to_dict()
        )
        frame = frame.loc[~unknown_mask]
        if frame.empty:
            return [], {str(k): int(v) for k, v in unknown_channels.items()}

        # Two vendor labels can map to the same tag on the same day
        grouped = (
            frame.groupby(['date', 'channel_tag', 'line_item_id'], as_index=False)[METRIC_COLUMNS]
            .sum()
            .sort_values(['date', 'channel_tag', 'line_item_id'], kind='mergesort')
        )

        rows = [
            DeliveryRow(
                lineItemId=record.line_item_id,
                date=record.date,
                channel=DeliveryChannel(record.channel_tag),
                amountSpent=float(record.amount_spent),
                impressions=float(record.impressions),
                clicks=float(record.clicks),
                results=float(record.results),
                video3sViews=float(record.video_3s_views),
            )
            for record in grouped.itertuples(index=False)
        ]
        return rows, {str(k): int(v) for k, v in unknown_channels.items()}

    def _daily_from_frames(self, frames: List[pd.DataFrame]) -> List[DailyDeliveryTotal]:
        frames = [f for f in frames if f is not None and not f.empty]
        if not frames:
            return []

        frame = self._prepare_frame(pd.concat(frames, ignore_index=True))
        grouped = (
            frame.groupby(['line_item_id', 'date'], as_index=False)[METRIC_COLUMNS]
            .sum()
            .sort_values(['line_item_id', 'date'], kind='mergesort')
        )
        return [
            DailyDeliveryTotal(
                lineItemId=record.line_item_id,
                date=record.date,
                amountSpent=float(record.amount_spent),
                impressions=float(record.impressions),
                clicks=float(record.clicks),
                results=float(record.results),
                video3sViews=float(record.video_3s_views),
            )
            for record in grouped.itertuples(index=False)
        ]


def _group_by_line_item(daily: Iterable[DailyDeliveryTotal]) -> Dict[str, List[DailyDeliveryTotal]]:
    grouped: Dict[str, List[DailyDeliveryTotal]] = {}
    for item in daily:
        grouped.setdefault(item.lineItemId, []).append(item)
    return grouped


def totals_by_line_item(rows: Iterable[DeliveryRow]) -> Dict[str, DeliveryTotals]:
    """Sum delivery rows per line item across dates and channels."""
    sums: Dict[str, Dict[str, float]] = {}
    for row in rows:
        bucket = sums.setdefault(row.lineItemId, {field: 0.0 for field in METRIC_FIELDS.values()})
        for field in METRIC_FIELDS.values():
            bucket[field] += getattr(row, field)
    return {line_item_id: DeliveryTotals(**values) for line_item_id, values in sums.items()}
