"""
Canonical Dataset Ingestion Service

This module loads clinical claims and general-ledger data into the canonical
Dataset used by every dashboard panel. Two interchangeable strategies produce
the same canonical shape:

Strategies:
- Query service (primary): six aggregate BigQuery queries run concurrently;
  any failure aborts the whole strategy (no partial merge)
- Snapshots (fallback): the claims and ledger CSV snapshots are read and the
  same grouping and summing is done locally with pandas

Both strategies normalize their raw rows through the declarative tables in
clinic_finance.services.normalization and hand a SourceAggregates bundle to
build_dataset, so canonicalization happens in exactly one place.

Key Rules:
- Duplicate (date, label) keys are summed; summed amounts are clamped at 0
- Records are sorted by date, then label
- Entity expense = average expense per visit * entity visits, where
  average expense per visit = total expense / total visits (0 without visits)
  and total visits are the physician visit totals, which cover every claim;
  a physician's direct ledger expense overrides the estimate
- Procedures and physicians are ordered by revenue desc, name asc; only the
  top `top_procedure_limit` procedures are kept
- Optimization trend: per day one Capacity point (visits) and one Utilization
  point (payments / visits * 100, 0 without visits)

Each strategy returns Ingested(dataset) or Failed(reason) and never raises;
load_canonical_dataset raises TotalIngestionFailure when both fail.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple, Union

import pandas as pd

from clinic_finance.core.config import Settings
from clinic_finance.core.query_executor import QueryExecutor, is_row_list
from clinic_finance.core.snapshot_reader import SnapshotReader, read_snapshot
from clinic_finance.models import (
    Dataset,
    ExpenseRecord,
    IngestionSource,
    MetricRecord,
    ProfitabilityRow,
    ProfitabilityView,
    RevenueRecord,
)
from clinic_finance.services.dashboard_state import DashboardState
from clinic_finance.services.metrics import CAPACITY_METRIC, UTILIZATION_METRIC
from clinic_finance.services.normalization import (
    QUERY_DAILY_UTILIZATION,
    QUERY_EXPENSE_BY_DATE,
    QUERY_PHYSICIAN_EXPENSE,
    QUERY_PHYSICIAN_REVENUE,
    QUERY_PROCEDURE_REVENUE,
    QUERY_REVENUE_BY_DATE,
    SNAPSHOT_CLAIM,
    SNAPSHOT_LEDGER,
    normalize_rows,
)
from clinic_finance.sql import build_ingestion_queries

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# ERRORS
# =============================================================================

class SourceUnavailable(Exception):
    """Raised inside a strategy when its source cannot produce usable rows."""


class TotalIngestionFailure(Exception):
    """Raised when both the primary and the fallback strategy failed."""

    def __init__(self, primary_reason: str, fallback_reason: str):
        self.primary_reason = primary_reason
        self.fallback_reason = fallback_reason
        super().__init__(
            f"All ingestion sources failed (query service: {primary_reason}; "
            f"snapshots: {fallback_reason})"
        )


# =============================================================================
# STRATEGY RESULTS
# =============================================================================

@dataclass(frozen=True)
class Ingested:
    """Successful strategy result."""
    dataset: Dataset


@dataclass(frozen=True)
class Failed:
    """Failed strategy result with a human-readable reason."""
    reason: str


IngestionOutcome = Union[Ingested, Failed]


@dataclass
class SourceAggregates:
    """
    Normalized, source-independent aggregates feeding build_dataset.

    Attributes:
        revenue: Rows with date, type, amount.
        expenses: Rows with date, category, amount.
        procedures: Rows with name, revenue, visits.
        physicians: Rows with name, revenue, visits.
        physician_expense: Rows with name, expense (direct ledger expense).
        utilization: Rows with date, visits, payments.
    """
    revenue: List[Dict[str, Any]] = field(default_factory=list)
    expenses: List[Dict[str, Any]] = field(default_factory=list)
    procedures: List[Dict[str, Any]] = field(default_factory=list)
    physicians: List[Dict[str, Any]] = field(default_factory=list)
    physician_expense: List[Dict[str, Any]] = field(default_factory=list)
    utilization: List[Dict[str, Any]] = field(default_factory=list)


# =============================================================================
# CANONICAL DATASET CONSTRUCTION
# =============================================================================

def _sum_by_date_label(
    rows: List[Dict[str, Any]],
    label_field: str,
) -> List[Tuple[date, str, float]]:
    """Collapse duplicate (date, label) keys by summation, clamp at 0, sort."""
    totals: Dict[Tuple[date, str], float] = {}
    for row in rows:
        key = (row['date'], row[label_field])
        totals[key] = totals.get(key, 0.0) + float(row.get('amount') or 0.0)
    return [
        (day, label, max(amount, 0.0))
        for (day, label), amount in sorted(totals.items())
    ]


def _sum_by_name(rows: List[Dict[str, Any]]) -> Dict[str, Dict[str, float]]:
    totals: Dict[str, Dict[str, float]] = {}
    for row in rows:
        entry = totals.setdefault(row['name'], {'revenue': 0.0, 'visits': 0})
        entry['revenue'] += float(row.get('revenue') or 0.0)
        entry['visits'] += int(row.get('visits') or 0)
    return totals


def average_expense_per_visit(total_expense: float, total_visits: int) -> float:
    """Total expense divided by total visits, or 0 when there are no visits."""
    if total_visits <= 0:
        return 0.0
    return total_expense / total_visits


def _ranked_rows(
    totals: Dict[str, Dict[str, float]],
    avg_expense: float,
    direct_expense: Optional[Dict[str, float]] = None,
) -> List[ProfitabilityRow]:
    direct_expense = direct_expense or {}
    rows = []
    for name, entry in totals.items():
        if name in direct_expense:
            expense = direct_expense[name]
        else:
            expense = avg_expense * entry['visits']
        rows.append(ProfitabilityRow(
            name=name,
            revenue=max(entry['revenue'], 0.0),
            expense=expense,
        ))
    return sorted(rows, key=lambda row: (-row.revenue, row.name))


def _build_optimization_trend(utilization: List[Dict[str, Any]]) -> List[MetricRecord]:
    per_day: Dict[date, List[int]] = {}
    for row in utilization:
        counts = per_day.setdefault(row['date'], [0, 0])
        counts[0] += int(row.get('visits') or 0)
        counts[1] += int(row.get('payments') or 0)

    trend: List[MetricRecord] = []
    for day, (visits, payments) in sorted(per_day.items()):
        utilization_pct = payments / visits * 100 if visits else 0.0
        trend.append(MetricRecord(date=day, metric=CAPACITY_METRIC, value=float(visits)))
        trend.append(MetricRecord(date=day, metric=UTILIZATION_METRIC, value=utilization_pct))
    return trend


def build_dataset(
    aggregates: SourceAggregates,
    source: IngestionSource,
    top_procedure_limit: int = 10,
) -> Dataset:
    """
    Build the canonical Dataset from normalized source aggregates.

    Args:
        aggregates: Normalized rows from either strategy.
        source: Strategy that produced the rows.
        top_procedure_limit: Procedures kept after ranking by revenue.

    Returns:
        Dataset with sorted, de-duplicated records and the profitability view.
    """
    revenue = [
        RevenueRecord(date=day, type=label, amount=amount)
        for day, label, amount in _sum_by_date_label(aggregates.revenue, 'type')
    ]
    expenses = [
        ExpenseRecord(date=day, category=label, amount=amount)
        for day, label, amount in _sum_by_date_label(aggregates.expenses, 'category')
    ]

    total_expense = sum(record.amount for record in expenses)
    physician_totals = _sum_by_name(aggregates.physicians)
    # Every claim belongs to exactly one physician group, dated or not
    total_visits = sum(int(entry['visits']) for entry in physician_totals.values())
    avg_expense = average_expense_per_visit(total_expense, total_visits)

    direct_expense: Dict[str, float] = {}
    for row in aggregates.physician_expense:
        name = row.get('name')
        if name is None:
            continue
        direct_expense[name] = direct_expense.get(name, 0.0) + float(row.get('expense') or 0.0)

    procedures = _ranked_rows(_sum_by_name(aggregates.procedures), avg_expense)
    physicians = _ranked_rows(physician_totals, avg_expense, direct_expense)

    return Dataset(
        revenue=revenue,
        expenses=expenses,
        optimization_trend=_build_optimization_trend(aggregates.utilization),
        profitability=ProfitabilityView(
            procedure=procedures[:max(top_procedure_limit, 0)],
            physician=physicians,
        ),
        source=source,
    )


# =============================================================================
# PRIMARY STRATEGY - QUERY SERVICE
# =============================================================================

async def _fetch(executor: QueryExecutor, name: str, query: str) -> List[Dict[str, Any]]:
    try:
        rows = await executor.execute(query)
    except Exception as e:
        raise SourceUnavailable(f"{name} query failed: {e}") from e
    if not is_row_list(rows):
        raise SourceUnavailable(f"{name} query returned {type(rows).__name__}, expected a list of rows")
    return rows


async def load_from_query_service(
    executor: Optional[QueryExecutor],
    settings: Settings,
) -> IngestionOutcome:
    """
    Load the dataset from the query service.

    The six aggregate queries run concurrently; the first failure aborts the
    strategy.

    Args:
        executor: Query executor, or None when no project is configured.
        settings: Application settings (dataset, tables, procedure limit).

    Returns:
        Ingested with source QUERY_SERVICE, or Failed with the reason.
    """
    try:
        if executor is None or not settings.bigquery_project:
            raise SourceUnavailable("query service is not configured")

        queries = build_ingestion_queries(
            project=settings.bigquery_project,
            dataset=settings.bigquery_dataset,
            claims_table=settings.claims_table,
            ledger_table=settings.ledger_table,
            top_procedure_limit=settings.top_procedure_limit,
        )
        names = list(queries.keys())
        results = await asyncio.gather(
            *(_fetch(executor, name, queries[name]) for name in names)
        )
        raw = dict(zip(names, results))
    except SourceUnavailable as e:
        logger.warning(f"Query service unavailable: {e}")
        return Failed(reason=str(e))

    aggregates = SourceAggregates(
        revenue=normalize_rows(
            raw['revenue_by_date'], QUERY_REVENUE_BY_DATE,
            required=('date',), schema_name='revenue_by_date',
        ),
        expenses=normalize_rows(
            raw['expense_by_date'], QUERY_EXPENSE_BY_DATE,
            required=('date',), schema_name='expense_by_date',
        ),
        procedures=normalize_rows(
            raw['top_procedures'], QUERY_PROCEDURE_REVENUE, schema_name='top_procedures',
        ),
        physicians=normalize_rows(
            raw['revenue_by_physician'], QUERY_PHYSICIAN_REVENUE,
            schema_name='revenue_by_physician',
        ),
        physician_expense=normalize_rows(
            raw['expense_by_physician'], QUERY_PHYSICIAN_EXPENSE,
            required=('name',), schema_name='expense_by_physician',
        ),
        utilization=normalize_rows(
            raw['daily_utilization'], QUERY_DAILY_UTILIZATION,
            required=('date',), schema_name='daily_utilization',
        ),
    )
    dataset = build_dataset(
        aggregates, IngestionSource.QUERY_SERVICE, settings.top_procedure_limit
    )
    return Ingested(dataset=dataset)


# =============================================================================
# FALLBACK STRATEGY - SNAPSHOTS
# =============================================================================

CLAIM_COLUMNS: List[str] = [rule.canonical for rule in SNAPSHOT_CLAIM.values()]
LEDGER_COLUMNS: List[str] = [rule.canonical for rule in SNAPSHOT_LEDGER.values()]


def _claims_frame(rows: List[Dict[str, Any]]) -> pd.DataFrame:
    df = pd.DataFrame(rows, columns=CLAIM_COLUMNS)
    df['amount'] = df['amount'].astype(float)
    df['paid'] = (df['amount'] > 0).astype(int)
    return df


def _ledger_frame(rows: List[Dict[str, Any]]) -> pd.DataFrame:
    df = pd.DataFrame(rows, columns=LEDGER_COLUMNS)
    df['amount'] = df['amount'].astype(float)
    return df


def _records(frame: pd.DataFrame) -> List[Dict[str, Any]]:
    return frame.reset_index().to_dict(orient='records')


def aggregate_snapshots(
    claim_rows: List[Dict[str, Any]],
    ledger_rows: List[Dict[str, Any]],
) -> SourceAggregates:
    """
    Group and sum normalized snapshot rows the way the aggregate queries do.

    Visits are counted as distinct visit IDs, payments as claim lines with a
    positive paid amount. Entity totals use every claim line, dated or not.

    Args:
        claim_rows: Claims normalized with SNAPSHOT_CLAIM.
        ledger_rows: Ledger entries normalized with SNAPSHOT_LEDGER.

    Returns:
        SourceAggregates equivalent to the query service results.
    """
    claims = _claims_frame(claim_rows)
    ledger = _ledger_frame(ledger_rows)

    dated_claims = claims[claims['date'].notna()]
    dated_ledger = ledger[ledger['date'].notna()]

    revenue = dated_claims.groupby(['date', 'type'])['amount'].sum()
    expenses = dated_ledger.groupby(['date', 'category'])['amount'].sum()

    procedures = claims.groupby('procedure').agg(
        revenue=('amount', 'sum'),
        visits=('visit_id', 'nunique'),
    )
    physicians = claims.groupby('physician').agg(
        revenue=('amount', 'sum'),
        visits=('visit_id', 'nunique'),
    )
    physician_expense = (
        ledger[ledger['physician'].notna()]
        .groupby('physician')['amount'].sum()
    )
    utilization = dated_claims.groupby('date').agg(
        visits=('visit_id', 'nunique'),
        payments=('paid', 'sum'),
    )

    return SourceAggregates(
        revenue=_records(revenue),
        expenses=_records(expenses),
        procedures=_records(procedures.rename_axis('name')),
        physicians=_records(physicians.rename_axis('name')),
        physician_expense=_records(
            physician_expense.rename_axis('name').rename('expense')
        ),
        utilization=_records(utilization),
    )


async def load_from_snapshots(
    settings: Settings,
    reader: SnapshotReader = read_snapshot,
) -> IngestionOutcome:
    """
    Load the dataset from the claims and ledger CSV snapshots.

    Both snapshots are read concurrently through the reader.

    Args:
        settings: Application settings (snapshot paths, procedure limit).
        reader: Async callable returning the rows of a snapshot path.

    Returns:
        Ingested with source SNAPSHOT, or Failed with the reason.
    """
    try:
        raw_claims, raw_ledger = await asyncio.gather(
            reader(settings.claims_snapshot_path),
            reader(settings.ledger_snapshot_path),
        )
        if not is_row_list(raw_claims) or not is_row_list(raw_ledger):
            raise SourceUnavailable("snapshot reader did not return a list of rows")
    except Exception as e:
        logger.warning(f"Snapshots unavailable: {e}")
        return Failed(reason=str(e) or type(e).__name__)

    claim_rows = normalize_rows(raw_claims, SNAPSHOT_CLAIM, schema_name='claims snapshot')
    ledger_rows = normalize_rows(raw_ledger, SNAPSHOT_LEDGER, schema_name='ledger snapshot')
    aggregates = aggregate_snapshots(claim_rows, ledger_rows)

    dataset = build_dataset(aggregates, IngestionSource.SNAPSHOT, settings.top_procedure_limit)
    return Ingested(dataset=dataset)


# =============================================================================
# ORCHESTRATION
# =============================================================================

async def load_canonical_dataset(
    executor: Optional[QueryExecutor],
    settings: Settings,
    reader: SnapshotReader = read_snapshot,
) -> Dataset:
    """
    Load the canonical dataset, preferring the query service.

    The snapshot strategy is only tried when the query service strategy failed.

    Args:
        executor: Query executor, or None when no project is configured.
        settings: Application settings.
        reader: Snapshot reader used by the fallback strategy.

    Returns:
        The canonical Dataset from whichever strategy succeeded.

    Raises:
        TotalIngestionFailure: When both strategies failed.
    """
    primary = await load_from_query_service(executor, settings)
    if isinstance(primary, Ingested):
        logger.info(
            f"Loaded dataset from query service: {len(primary.dataset.revenue)} revenue, "
            f"{len(primary.dataset.expenses)} expense records"
        )
        return primary.dataset

    logger.warning(f"Degraded mode: loading snapshots ({primary.reason})")
    fallback = await load_from_snapshots(settings, reader)
    if isinstance(fallback, Ingested):
        logger.info(
            f"Loaded dataset from snapshots: {len(fallback.dataset.revenue)} revenue, "
            f"{len(fallback.dataset.expenses)} expense records"
        )
        return fallback.dataset

    error = TotalIngestionFailure(primary.reason, fallback.reason)
    logger.error(str(error))
    raise error


async def refresh_dashboard_state(
    state: DashboardState,
    executor: Optional[QueryExecutor],
    settings: Settings,
    reader: SnapshotReader = read_snapshot,
) -> Dataset:
    """
    Reload the dataset and publish it into the dashboard state.

    Refreshes are serialized by the state's lock. On TotalIngestionFailure the
    state keeps its previous dataset and the error propagates.

    Returns:
        The newly published Dataset.
    """
    async with state.refresh_lock:
        dataset = await load_canonical_dataset(executor, settings, reader)
        state.replace_dataset(dataset)
    return dataset


__all__ = [
    'SourceUnavailable',
    'TotalIngestionFailure',
    'Ingested',
    'Failed',
    'IngestionOutcome',
    'SourceAggregates',
    'average_expense_per_visit',
    'build_dataset',
    'aggregate_snapshots',
    'load_from_query_service',
    'load_from_snapshots',
    'load_canonical_dataset',
    'refresh_dashboard_state',
]
