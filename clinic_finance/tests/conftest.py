"""
Pytest Configuration and Shared Fixtures for Clinic Finance Backend Tests.

This module provides fixtures and configuration for all backend tests, supporting:
- Async test execution with pytest-asyncio
- Real Settings instances isolated from the local .env file
- Mock external service fixtures (BigQuery client, query executor, snapshot reader)
- Sample raw data for both ingestion sources

Sample data:
    The claims/ledger snapshot rows and the query service result rows below
    describe the same two days of activity, so both ingestion strategies must
    produce the same canonical dataset from them:

    - 2024-01-01: revenue 150 (Commercial 100, Medicare 50), expense 90 (Rent)
    - 2024-01-02: revenue 40 (Commercial), expense 50 (Supplies, Dr. Adams)
    - one Medicare claim of 30 with an unparseable service date, which only
      counts toward procedure and physician totals
"""

from datetime import date
from typing import Any, Callable, Dict, Generator, List
from unittest.mock import AsyncMock, Mock, patch

import pytest

from clinic_finance.core.config import Settings
from clinic_finance.sql import build_ingestion_queries


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Configure custom pytest markers for test organization.

    Custom markers defined:
    - integration: Marks integration tests requiring external services
    """
    config.addinivalue_line(
        'markers',
        'integration: marks tests requiring external service connectivity'
    )


# ============================================================
# SETTINGS FIXTURES
# ============================================================

@pytest.fixture
def test_settings() -> Settings:
    """
    Settings with BigQuery enabled and fixed snapshot paths.

    _env_file=None keeps a developer's .env from leaking into tests.
    """
    return Settings(
        _env_file=None,
        bigquery_project='test-project',
        bigquery_dataset='finance',
        claims_table='claims',
        ledger_table='general_ledger',
        claims_snapshot_path='snapshots/claims.csv',
        ledger_snapshot_path='snapshots/ledger.csv',
        top_procedure_limit=10,
    )


@pytest.fixture
def offline_settings(test_settings: Settings) -> Settings:
    """Settings without a BigQuery project (query service disabled)."""
    return test_settings.model_copy(update={'bigquery_project': None})


# ============================================================
# SAMPLE RAW DATA FIXTURES
# ============================================================

@pytest.fixture
def sample_claim_rows() -> List[Dict[str, str]]:
    """Raw claims snapshot rows, as read from CSV (all strings)."""
    header = ['claim_id', 'service_date', 'revenue_type', 'cpt_code',
              'physician', 'visit_id', 'paid_amount']
    rows = [
        ['C1', '2024-01-01', 'Commercial', '99213', 'Dr. Adams', 'V1', '100'],
        ['C2', '2024-01-01', 'Medicare', '99214', 'Dr. Baker', 'V2', '50'],
        ['C3', '2024-01-02', 'Commercial', '99213', 'Dr. Adams', 'V3', '40'],
        ['C4', '2024-01-02', 'Commercial', '99213', 'Dr. Adams', 'V3', '0'],
        ['C5', 'not-a-date', 'Medicare', '99214', 'Dr. Baker', 'V4', '30'],
    ]
    return [dict(zip(header, row)) for row in rows]


@pytest.fixture
def sample_ledger_rows() -> List[Dict[str, str]]:
    """Raw general-ledger snapshot rows, as read from CSV (all strings)."""
    header = ['entry_id', 'posting_date', 'category', 'physician', 'amount']
    rows = [
        ['E1', '2024-01-01', 'Rent', '', '90'],
        ['E2', '2024-01-02', 'Supplies', 'Dr. Adams', '50'],
    ]
    return [dict(zip(header, row)) for row in rows]


@pytest.fixture
def sample_query_results() -> Dict[str, List[Dict[str, Any]]]:
    """Query service result rows equivalent to the sample snapshots."""
    return {
        'revenue_by_date': [
            {'day': date(2024, 1, 1), 'revenue_type': 'Commercial', 'total_paid': 100.0},
            {'day': date(2024, 1, 1), 'revenue_type': 'Medicare', 'total_paid': 50.0},
            {'day': date(2024, 1, 2), 'revenue_type': 'Commercial', 'total_paid': 40.0},
        ],
        'expense_by_date': [
            {'day': date(2024, 1, 1), 'category': 'Rent', 'total_amount': 90.0},
            {'day': date(2024, 1, 2), 'category': 'Supplies', 'total_amount': 50.0},
        ],
        'top_procedures': [
            {'cpt_code': '99213', 'revenue': 140.0, 'visits': 2},
            {'cpt_code': '99214', 'revenue': 80.0, 'visits': 2},
        ],
        'revenue_by_physician': [
            {'physician': 'Dr. Adams', 'revenue': 140.0, 'visits': 2},
            {'physician': 'Dr. Baker', 'revenue': 80.0, 'visits': 2},
        ],
        'expense_by_physician': [
            {'physician': 'Dr. Adams', 'expense': 50.0},
        ],
        'daily_utilization': [
            {'day': date(2024, 1, 1), 'visits': 2, 'payments': 2},
            {'day': date(2024, 1, 2), 'visits': 1, 'payments': 1},
        ],
    }


# ============================================================
# MOCK COLLABORATOR FIXTURES
# ============================================================

def make_query_executor(
    settings: Settings,
    results: Dict[str, Any],
    failing: Dict[str, Exception] = None,
) -> AsyncMock:
    """
    Build a mock QueryExecutor answering each ingestion query by name.

    Args:
        settings: Settings used to build the expected query texts.
        results: Result rows keyed by query name.
        failing: Exceptions keyed by query name; those queries raise.

    Returns:
        Mock whose awaitable execute(query) returns or raises per query.
    """
    failing = failing or {}
    queries = build_ingestion_queries(
        project=settings.bigquery_project,
        dataset=settings.bigquery_dataset,
        claims_table=settings.claims_table,
        ledger_table=settings.ledger_table,
        top_procedure_limit=settings.top_procedure_limit,
    )
    name_by_query = {sql: name for name, sql in queries.items()}

    async def execute(query: str):
        name = name_by_query[query]
        if name in failing:
            raise failing[name]
        return results[name]

    executor = Mock()
    executor.execute = AsyncMock(side_effect=execute)
    return executor


@pytest.fixture
def mock_executor(
    test_settings: Settings,
    sample_query_results: Dict[str, List[Dict[str, Any]]],
) -> AsyncMock:
    """Query executor returning the sample query results."""
    return make_query_executor(test_settings, sample_query_results)


def make_snapshot_reader(files: Dict[str, Any]) -> Callable:
    """
    Build an async snapshot reader serving rows by path.

    A value that is an Exception instance is raised instead of returned.
    """
    async def reader(path):
        value = files[str(path)]
        if isinstance(value, Exception):
            raise value
        return value

    return reader


@pytest.fixture
def snapshot_reader(
    test_settings: Settings,
    sample_claim_rows: List[Dict[str, str]],
    sample_ledger_rows: List[Dict[str, str]],
) -> Callable:
    """Async reader serving the sample snapshots at the configured paths."""
    return make_snapshot_reader({
        test_settings.claims_snapshot_path: sample_claim_rows,
        test_settings.ledger_snapshot_path: sample_ledger_rows,
    })


@pytest.fixture
def missing_snapshot_reader(test_settings: Settings) -> Callable:
    """Async reader for which both snapshot files are missing."""
    return make_snapshot_reader({
        test_settings.claims_snapshot_path: FileNotFoundError('claims.csv not found'),
        test_settings.ledger_snapshot_path: FileNotFoundError('ledger.csv not found'),
    })


@pytest.fixture
def mock_bigquery_client() -> Generator[Mock, None, None]:
    """
    Mock BigQuery client for testing BigQueryQueryExecutor.

    Yields:
        Mock: Mock BigQuery Client instance

    Mocked Methods:
        - client.query(sql): Returns QueryJob mock
        - query_job.result(timeout=...): Returns an iterable of Row-like mocks

    Note:
        Patches at 'clinic_finance.core.query_executor.bigquery.Client'.
    """
    client = Mock()
    query_job = Mock()
    query_job.result = Mock(return_value=[])
    client.query = Mock(return_value=query_job)

    with patch('clinic_finance.core.query_executor.bigquery.Client', return_value=client):
        yield client


def make_bigquery_row(values: Dict[str, Any]) -> Mock:
    """Mock google.cloud.bigquery.Row exposing items()."""
    row = Mock()
    row.items = Mock(return_value=list(values.items()))
    return row


# ============================================================
# HELPER FUNCTIONS (Exported)
# ============================================================

def assert_close(
    actual: float,
    expected: float,
    tolerance: float = 0.001
) -> None:
    """
    Assert two floats are close within tolerance.

    Raises:
        AssertionError: If values differ by more than tolerance
    """
    if abs(actual - expected) >= tolerance:
        raise AssertionError(
            f'{actual} not close to {expected} within tolerance {tolerance}'
        )
