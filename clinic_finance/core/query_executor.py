"""
Query executor module for the Clinic Finance backend.

Wraps the google-cloud-bigquery client behind a small async interface used by
the query service ingestion strategy. The BigQuery client library is blocking,
so each query runs in a worker thread via asyncio.to_thread, which lets the six
ingestion queries execute concurrently under asyncio.gather.

Key Components:
- QueryExecutor: Protocol implemented by anything that can run a SQL string
- BigQueryQueryExecutor: BigQuery-backed implementation
- build_query_executor(): Factory returning None when no project is configured

Usage:
    from clinic_finance.core.query_executor import build_query_executor

    executor = build_query_executor(get_settings())
    if executor is not None:
        rows = await executor.execute("SELECT 1 AS one")
        # rows == [{'one': 1}]

Environment Variables:
    BIGQUERY_PROJECT: Project the client bills queries to. When unset no
        executor is built and ingestion falls back to the CSV snapshots.
    GOOGLE_APPLICATION_CREDENTIALS: Standard Google credentials lookup.
"""

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol

from google.cloud import bigquery

from clinic_finance.core.config import Settings

logger = logging.getLogger(__name__)


class QueryExecutor(Protocol):
    """Anything that runs a SQL string and returns result rows as mappings."""

    async def execute(self, query: str) -> List[Dict[str, Any]]:
        ...


class BigQueryQueryExecutor:
    """
    Execute SQL against BigQuery.

    The client is created on first use so constructing the executor never
    touches the network or the credential chain.

    Attributes:
        project: BigQuery project ID.
        timeout: Seconds to wait for each query job result.
    """

    def __init__(self, project: str, timeout: float = 30.0):
        self.project = project
        self.timeout = timeout
        self._client: Optional[bigquery.Client] = None

    def _get_client(self) -> bigquery.Client:
        if self._client is None:
            self._client = bigquery.Client(project=self.project)
        return self._client

    def _run(self, query: str) -> List[Dict[str, Any]]:
        client = self._get_client()
        query_job = client.query(query)
        result = query_job.result(timeout=self.timeout)
        return [dict(row.items()) for row in result]

    async def execute(self, query: str) -> List[Dict[str, Any]]:
        """
        Run a query and return its rows.

        Args:
            query: BigQuery Standard SQL.

        Returns:
            One dict per result row, keyed by column name.

        Raises:
            google.api_core.exceptions.GoogleAPICallError: On query failure.
            concurrent.futures.TimeoutError: When the job exceeds the timeout.
        """
        rows = await asyncio.to_thread(self._run, query)
        logger.debug(f"BigQuery returned {len(rows)} rows")
        return rows


def build_query_executor(settings: Settings) -> Optional[QueryExecutor]:
    """
    Build the BigQuery executor from settings.

    Returns:
        A BigQueryQueryExecutor, or None when BIGQUERY_PROJECT is not set.
    """
    if not settings.bigquery_project:
        logger.info("BIGQUERY_PROJECT not set; query service ingestion disabled")
        return None
    return BigQueryQueryExecutor(
        project=settings.bigquery_project,
        timeout=settings.query_timeout_seconds,
    )


def is_row_list(value: Any) -> bool:
    """True when value is a list whose items are all mappings."""
    return isinstance(value, list) and all(isinstance(row, Mapping) for row in value)


__all__ = [
    'QueryExecutor',
    'BigQueryQueryExecutor',
    'build_query_executor',
    'is_row_list',
]
