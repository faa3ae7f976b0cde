"""
BigQuery warehouse client for delivery queries.

Wraps a single google-cloud-bigquery Client behind a small async facade so the
delivery gateway can run parameterised queries off the event loop, apply its
own deadline and cancel the underlying job when the caller gives up.

Lifecycle mirrors the database pool:

    await init_warehouse()       # application startup
    warehouse = get_warehouse()  # services / dependencies
    await close_warehouse()      # application shutdown
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Sequence

import pandas as pd
import requests
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as google_auth_exceptions
from google.cloud import bigquery

from pacing_engine.core.config import get_settings

logger = logging.getLogger(__name__)


# Failures worth another attempt; anything else (bad SQL, permissions) is final.
# The client's HTTP transport raises requests / google-auth errors, not the
# builtin ConnectionError.
TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.InternalServerError,
    google_exceptions.BadGateway,
    google_exceptions.GatewayTimeout,
    google_exceptions.TooManyRequests,
    requests.exceptions.ConnectionError,
    requests.exceptions.ChunkedEncodingError,
    google_auth_exceptions.TransportError,
    ConnectionError,
)

# Everything the warehouse call can raise that is reported as a query failure
WAREHOUSE_ERRORS = (
    google_exceptions.GoogleAPIError,
    google_auth_exceptions.GoogleAuthError,
    requests.exceptions.RequestException,
    ConnectionError,
)


# =============================================================================
# Query Parameters
# =============================================================================

def string_array_param(name: str, values: Sequence[str]) -> bigquery.ArrayQueryParameter:
    return bigquery.ArrayQueryParameter(name, 'STRING', list(values))


def date_param(name: str, value: Any) -> bigquery.ScalarQueryParameter:
    return bigquery.ScalarQueryParameter(name, 'DATE', value)


# =============================================================================
# Warehouse Facade
# =============================================================================

class BigQueryWarehouse:
    """Async facade over a BigQuery client returning pandas DataFrames."""

    def __init__(self, client: bigquery.Client):
        self._client = client

    @property
    def client(self) -> bigquery.Client:
        return self._client

    async def query_dataframe(
        self,
        sql: str,
        parameters: Sequence[bigquery.ScalarQueryParameter] = (),
        timeout: Optional[float] = None,
        labels: Optional[Dict[str, str]] = None,
    ) -> pd.DataFrame:
        """
        Run a parameterised query and return its rows as a DataFrame.

        The blocking client call runs in a worker thread. If the awaiting task
        is cancelled (deadline, caller abort) the BigQuery job is cancelled too.

        Args:
            sql: Standard SQL text with @named parameters.
            parameters: Query parameters.
            timeout: Seconds to wait for the job result.
            labels: Job labels for warehouse-side attribution.

        Returns:
            pd.DataFrame with one column per selected field.
        """
        job_config = bigquery.QueryJobConfig(
            query_parameters=list(parameters),
            labels=labels or {},
        )
        jobs = []

        def _execute() -> pd.DataFrame:
            job = self._client.query(sql, job_config=job_config)
            jobs.append(job)
            return job.result(timeout=timeout).to_dataframe()

        try:
            return await asyncio.to_thread(_execute)
        except asyncio.CancelledError:
            if jobs:
                asyncio.get_running_loop().run_in_executor(None, _cancel_job, jobs[0])
            raise


def _cancel_job(job: bigquery.QueryJob) -> None:
    try:
        job.cancel()
        logger.info(f"Cancelled BigQuery job {job.job_id}")
    except google_exceptions.GoogleAPIError as e:
        logger.warning(f"Could not cancel BigQuery job {job.job_id}: {e}")


# =============================================================================
# Lifecycle
# =============================================================================

_warehouse: Optional[BigQueryWarehouse] = None


async def init_warehouse() -> BigQueryWarehouse:
    """
    Create the shared BigQuery client (idempotent).

    Credentials come from GOOGLE_APPLICATION_CREDENTIALS / ambient ADC.
    """
    global _warehouse

    if _warehouse is None:
        settings = get_settings()
        client = bigquery.Client(project=settings.bigquery_project)
        _warehouse = BigQueryWarehouse(client)
        logger.info(f"BigQuery client initialised for project {client.project}")

    return _warehouse


async def get_warehouse() -> BigQueryWarehouse:
    global _warehouse
    if _warehouse is None:
        await init_warehouse()
    assert _warehouse is not None, "Warehouse should be initialized after init_warehouse()"
    return _warehouse


async def close_warehouse() -> None:
    global _warehouse
    if _warehouse is not None:
        _warehouse.client.close()
        _warehouse = None
