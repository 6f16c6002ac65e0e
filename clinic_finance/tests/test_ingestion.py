"""
Test Module for the Canonical Dataset Ingestion Service.

This module validates:
- The query service strategy (six concurrent queries, all-or-nothing)
- The snapshot strategy (local pandas grouping, distinct visit counting)
- Canonical dataset construction (duplicate summing, clamping, ordering,
  expense estimation, direct physician expense, top-N procedures)
- Orchestration: primary first, fallback only on failure, total failure
- Dashboard state refresh semantics
- BigQueryQueryExecutor wiring to the google-cloud-bigquery client
"""

from datetime import date
from unittest.mock import AsyncMock

import pytest

from clinic_finance.core.query_executor import (
    BigQueryQueryExecutor,
    build_query_executor,
)
from clinic_finance.core.snapshot_reader import read_snapshot, read_snapshot_rows
from clinic_finance.models import Dataset, IngestionSource
from clinic_finance.services.dashboard_state import DashboardState
from clinic_finance.services.ingestion import (
    Failed,
    Ingested,
    SourceAggregates,
    TotalIngestionFailure,
    aggregate_snapshots,
    average_expense_per_visit,
    build_dataset,
    load_canonical_dataset,
    load_from_query_service,
    load_from_snapshots,
    refresh_dashboard_state,
)
from clinic_finance.services.metrics import CAPACITY_METRIC, UTILIZATION_METRIC
from clinic_finance.sql import build_ingestion_queries, get_top_procedures_query
from clinic_finance.tests.conftest import (
    assert_close,
    make_bigquery_row,
    make_query_executor,
    make_snapshot_reader,
)


# =============================================================================
# BUILD DATASET
# =============================================================================

class TestBuildDataset:
    """Tests for canonical dataset construction from normalized aggregates."""

    def test_duplicate_date_label_keys_are_summed(self):
        aggregates = SourceAggregates(revenue=[
            {'date': date(2024, 1, 1), 'type': 'Commercial', 'amount': 10.0},
            {'date': date(2024, 1, 1), 'type': 'Commercial', 'amount': 15.0},
        ])
        dataset = build_dataset(aggregates, IngestionSource.SNAPSHOT)

        assert len(dataset.revenue) == 1
        assert dataset.revenue[0].amount == 25.0

    def test_negative_totals_are_clamped_to_zero(self):
        aggregates = SourceAggregates(expenses=[
            {'date': date(2024, 1, 1), 'category': 'Refunds', 'amount': -40.0},
            {'date': date(2024, 1, 1), 'category': 'Refunds', 'amount': 10.0},
        ])
        dataset = build_dataset(aggregates, IngestionSource.SNAPSHOT)

        assert dataset.expenses[0].amount == 0.0

    def test_records_sorted_by_date_then_label(self):
        aggregates = SourceAggregates(revenue=[
            {'date': date(2024, 1, 2), 'type': 'Commercial', 'amount': 1.0},
            {'date': date(2024, 1, 1), 'type': 'Medicare', 'amount': 1.0},
            {'date': date(2024, 1, 1), 'type': 'Commercial', 'amount': 1.0},
        ])
        dataset = build_dataset(aggregates, IngestionSource.SNAPSHOT)

        keys = [(r.date, r.type) for r in dataset.revenue]
        assert keys == [
            (date(2024, 1, 1), 'Commercial'),
            (date(2024, 1, 1), 'Medicare'),
            (date(2024, 1, 2), 'Commercial'),
        ]

    def test_physician_expense_estimated_from_average_cost_per_visit(self):
        # 1000 expense over 40 visits -> 25 per visit; 10 visits -> 250
        aggregates = SourceAggregates(
            expenses=[{'date': date(2024, 1, 1), 'category': 'Payroll', 'amount': 1000.0}],
            utilization=[{'date': date(2024, 1, 1), 'visits': 40, 'payments': 30}],
            physicians=[
                {'name': 'Dr. Chen', 'revenue': 900.0, 'visits': 10},
                {'name': 'Dr. Diaz', 'revenue': 100.0, 'visits': 30},
            ],
        )
        dataset = build_dataset(aggregates, IngestionSource.QUERY_SERVICE)

        row = dataset.profitability.physician[0]
        assert row.name == 'Dr. Chen'
        assert row.expense == 250.0
        assert row.margin == 650.0

    def test_direct_physician_expense_overrides_estimate(self):
        aggregates = SourceAggregates(
            expenses=[{'date': date(2024, 1, 1), 'category': 'Payroll', 'amount': 1000.0}],
            utilization=[{'date': date(2024, 1, 1), 'visits': 40, 'payments': 30}],
            physicians=[
                {'name': 'Dr. Chen', 'revenue': 900.0, 'visits': 10},
                {'name': 'Dr. Diaz', 'revenue': 500.0, 'visits': 10},
                {'name': 'Dr. Evans', 'revenue': 300.0, 'visits': 20},
            ],
            physician_expense=[{'name': 'Dr. Diaz', 'expense': 75.0}],
        )
        dataset = build_dataset(aggregates, IngestionSource.QUERY_SERVICE)

        expenses = {row.name: row.expense for row in dataset.profitability.physician}
        assert expenses == {'Dr. Chen': 250.0, 'Dr. Diaz': 75.0, 'Dr. Evans': 500.0}

    def test_visit_spanning_two_days_counted_once(self):
        # V1 shows up in both daily utilization rows but is one visit
        aggregates = SourceAggregates(
            expenses=[{'date': date(2024, 1, 1), 'category': 'Rent', 'amount': 100.0}],
            utilization=[
                {'date': date(2024, 1, 1), 'visits': 1, 'payments': 1},
                {'date': date(2024, 1, 2), 'visits': 1, 'payments': 0},
            ],
            procedures=[{'name': '99213', 'revenue': 80.0, 'visits': 1}],
            physicians=[{'name': 'Dr. Chen', 'revenue': 80.0, 'visits': 1}],
        )
        dataset = build_dataset(aggregates, IngestionSource.SNAPSHOT)

        assert dataset.profitability.physician[0].expense == 100.0
        assert dataset.profitability.procedure[0].expense == 100.0

    def test_no_visits_means_zero_estimated_expense(self):
        aggregates = SourceAggregates(
            expenses=[{'date': date(2024, 1, 1), 'category': 'Rent', 'amount': 500.0}],
            procedures=[{'name': '99213', 'revenue': 100.0, 'visits': 3}],
        )
        dataset = build_dataset(aggregates, IngestionSource.SNAPSHOT)

        assert dataset.profitability.procedure[0].expense == 0.0

    def test_entities_ordered_by_revenue_then_name(self):
        aggregates = SourceAggregates(procedures=[
            {'name': 'B', 'revenue': 50.0, 'visits': 1},
            {'name': 'C', 'revenue': 90.0, 'visits': 1},
            {'name': 'A', 'revenue': 50.0, 'visits': 1},
        ])
        dataset = build_dataset(aggregates, IngestionSource.SNAPSHOT)

        assert [row.name for row in dataset.profitability.procedure] == ['C', 'A', 'B']

    def test_only_top_procedures_kept(self):
        aggregates = SourceAggregates(procedures=[
            {'name': f'P{i:02d}', 'revenue': float(i), 'visits': 1} for i in range(15)
        ])
        dataset = build_dataset(aggregates, IngestionSource.SNAPSHOT, top_procedure_limit=10)

        names = [row.name for row in dataset.profitability.procedure]
        assert len(names) == 10
        assert names[0] == 'P14'
        assert 'P04' not in names

    def test_optimization_trend_has_capacity_and_utilization_per_day(self):
        aggregates = SourceAggregates(utilization=[
            {'date': date(2024, 1, 2), 'visits': 0, 'payments': 0},
            {'date': date(2024, 1, 1), 'visits': 4, 'payments': 3},
        ])
        dataset = build_dataset(aggregates, IngestionSource.SNAPSHOT)

        points = [(p.date, p.metric, p.value) for p in dataset.optimization_trend]
        assert points == [
            (date(2024, 1, 1), CAPACITY_METRIC, 4.0),
            (date(2024, 1, 1), UTILIZATION_METRIC, 75.0),
            (date(2024, 1, 2), CAPACITY_METRIC, 0.0),
            (date(2024, 1, 2), UTILIZATION_METRIC, 0.0),
        ]

    def test_empty_aggregates_build_empty_dataset(self):
        dataset = build_dataset(SourceAggregates(), IngestionSource.SNAPSHOT)

        assert dataset.revenue == []
        assert dataset.expenses == []
        assert dataset.profitability.procedure == []
        assert dataset.profitability.physician == []
        assert dataset.source == IngestionSource.SNAPSHOT

    def test_average_expense_per_visit(self):
        assert average_expense_per_visit(1000.0, 40) == 25.0
        assert average_expense_per_visit(1000.0, 0) == 0.0


# =============================================================================
# QUERY SERVICE STRATEGY
# =============================================================================

class TestQueryServiceStrategy:
    """Tests for load_from_query_service."""

    @pytest.mark.asyncio
    async def test_loads_dataset_from_all_six_queries(self, mock_executor, test_settings):
        outcome = await load_from_query_service(mock_executor, test_settings)

        assert isinstance(outcome, Ingested)
        assert outcome.dataset.source == IngestionSource.QUERY_SERVICE
        assert mock_executor.execute.await_count == 6

    @pytest.mark.asyncio
    async def test_canonical_records(self, mock_executor, test_settings):
        outcome = await load_from_query_service(mock_executor, test_settings)
        dataset = outcome.dataset

        assert [(r.date, r.type, r.amount) for r in dataset.revenue] == [
            (date(2024, 1, 1), 'Commercial', 100.0),
            (date(2024, 1, 1), 'Medicare', 50.0),
            (date(2024, 1, 2), 'Commercial', 40.0),
        ]
        assert [(r.date, r.category, r.amount) for r in dataset.expenses] == [
            (date(2024, 1, 1), 'Rent', 90.0),
            (date(2024, 1, 2), 'Supplies', 50.0),
        ]

    @pytest.mark.asyncio
    async def test_missing_executor_fails(self, test_settings):
        outcome = await load_from_query_service(None, test_settings)

        assert isinstance(outcome, Failed)
        assert 'not configured' in outcome.reason

    @pytest.mark.asyncio
    async def test_missing_project_fails(self, mock_executor, offline_settings):
        outcome = await load_from_query_service(mock_executor, offline_settings)

        assert isinstance(outcome, Failed)
        mock_executor.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_single_query_failure_fails_whole_strategy(
        self, test_settings, sample_query_results
    ):
        executor = make_query_executor(
            test_settings,
            sample_query_results,
            failing={'daily_utilization': RuntimeError('quota exceeded')},
        )
        outcome = await load_from_query_service(executor, test_settings)

        assert isinstance(outcome, Failed)
        assert 'daily_utilization' in outcome.reason
        assert 'quota exceeded' in outcome.reason

    @pytest.mark.asyncio
    async def test_non_list_response_fails(self, test_settings, sample_query_results):
        results = dict(sample_query_results, expense_by_date={'rows': []})
        executor = make_query_executor(test_settings, results)

        outcome = await load_from_query_service(executor, test_settings)

        assert isinstance(outcome, Failed)
        assert 'expense_by_date' in outcome.reason

    @pytest.mark.asyncio
    async def test_rows_with_bad_dates_are_dropped(self, test_settings, sample_query_results):
        results = dict(sample_query_results)
        results['revenue_by_date'] = results['revenue_by_date'] + [
            {'day': None, 'revenue_type': 'Commercial', 'total_paid': 999.0},
        ]
        executor = make_query_executor(test_settings, results)

        outcome = await load_from_query_service(executor, test_settings)

        assert sum(r.amount for r in outcome.dataset.revenue) == 190.0

    @pytest.mark.asyncio
    async def test_null_labels_get_fallback_labels(self, test_settings, sample_query_results):
        results = dict(sample_query_results)
        results['revenue_by_date'] = [
            {'day': date(2024, 1, 1), 'revenue_type': None, 'total_paid': 10.0},
        ]
        results['revenue_by_physician'] = [
            {'physician': '  ', 'revenue': 10.0, 'visits': 1},
        ]
        executor = make_query_executor(test_settings, results)

        outcome = await load_from_query_service(executor, test_settings)

        assert outcome.dataset.revenue[0].type == 'Claims'
        assert outcome.dataset.profitability.physician[0].name == 'Unassigned'


# =============================================================================
# SNAPSHOT STRATEGY
# =============================================================================

class TestSnapshotStrategy:
    """Tests for load_from_snapshots and aggregate_snapshots."""

    @pytest.mark.asyncio
    async def test_loads_dataset_from_snapshots(self, test_settings, snapshot_reader):
        outcome = await load_from_snapshots(test_settings, snapshot_reader)

        assert isinstance(outcome, Ingested)
        assert outcome.dataset.source == IngestionSource.SNAPSHOT

    @pytest.mark.asyncio
    async def test_unparseable_dates_excluded_from_revenue(self, test_settings, snapshot_reader):
        outcome = await load_from_snapshots(test_settings, snapshot_reader)

        # C5 (30, bad date) is left out; C4 (0) is summed into C3's key
        assert sum(r.amount for r in outcome.dataset.revenue) == 190.0
        assert len(outcome.dataset.revenue) == 3

    @pytest.mark.asyncio
    async def test_entity_totals_use_every_claim(self, test_settings, snapshot_reader):
        outcome = await load_from_snapshots(test_settings, snapshot_reader)
        procedures = {r.name: r.revenue for r in outcome.dataset.profitability.procedure}

        assert procedures == {'99213': 140.0, '99214': 80.0}

    @pytest.mark.asyncio
    async def test_visits_are_distinct_visit_ids(self, test_settings, snapshot_reader):
        outcome = await load_from_snapshots(test_settings, snapshot_reader)
        capacity = [
            p.value for p in outcome.dataset.optimization_trend
            if p.metric == CAPACITY_METRIC
        ]

        # 2024-01-02 has two claim lines on visit V3
        assert capacity == [2.0, 1.0]

    @pytest.mark.asyncio
    async def test_missing_snapshot_fails(self, test_settings, missing_snapshot_reader):
        outcome = await load_from_snapshots(test_settings, missing_snapshot_reader)

        assert isinstance(outcome, Failed)
        assert 'not found' in outcome.reason

    def test_aggregate_snapshots_counts_payments(self, sample_claim_rows, sample_ledger_rows):
        from clinic_finance.services.normalization import (
            SNAPSHOT_CLAIM,
            SNAPSHOT_LEDGER,
            normalize_rows,
        )

        aggregates = aggregate_snapshots(
            normalize_rows(sample_claim_rows, SNAPSHOT_CLAIM),
            normalize_rows(sample_ledger_rows, SNAPSHOT_LEDGER),
        )
        by_day = {row['date']: row for row in aggregates.utilization}

        assert by_day[date(2024, 1, 1)]['payments'] == 2
        assert by_day[date(2024, 1, 2)]['payments'] == 1
        assert [(row['name'], row['expense']) for row in aggregates.physician_expense] == [
            ('Dr. Adams', 50.0),
        ]

    def test_aggregate_snapshots_handles_empty_input(self):
        aggregates = aggregate_snapshots([], [])

        assert aggregates.revenue == []
        assert aggregates.procedures == []
        assert aggregates.utilization == []


# =============================================================================
# ORCHESTRATION
# =============================================================================

class TestLoadCanonicalDataset:
    """Tests for the primary-then-fallback orchestration."""

    @pytest.mark.asyncio
    async def test_primary_success_skips_snapshots(self, mock_executor, test_settings):
        reader = AsyncMock()

        dataset = await load_canonical_dataset(mock_executor, test_settings, reader)

        assert dataset.source == IngestionSource.QUERY_SERVICE
        reader.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_executor_failure_falls_back_with_same_canonical_shape(
        self, mock_executor, test_settings, sample_query_results, snapshot_reader
    ):
        failing_executor = make_query_executor(
            test_settings,
            sample_query_results,
            failing={'top_procedures': ConnectionError('network unreachable')},
        )

        primary = await load_canonical_dataset(mock_executor, test_settings, snapshot_reader)
        fallback = await load_canonical_dataset(failing_executor, test_settings, snapshot_reader)

        assert primary.source == IngestionSource.QUERY_SERVICE
        assert fallback.source == IngestionSource.SNAPSHOT
        assert primary.model_dump(exclude={'source'}) == fallback.model_dump(exclude={'source'})

    @pytest.mark.asyncio
    async def test_sample_profitability(self, mock_executor, test_settings, snapshot_reader):
        dataset = await load_canonical_dataset(mock_executor, test_settings, snapshot_reader)
        physicians = {row.name: row for row in dataset.profitability.physician}

        # 140 total expense over 4 visits, including the undated V4;
        # Dr. Adams has direct ledger expense
        assert physicians['Dr. Adams'].expense == 50.0
        assert_close(physicians['Dr. Baker'].expense, 70.0)

    @pytest.mark.asyncio
    async def test_total_failure_raises_with_both_reasons(
        self, test_settings, missing_snapshot_reader
    ):
        with pytest.raises(TotalIngestionFailure) as exc_info:
            await load_canonical_dataset(None, test_settings, missing_snapshot_reader)

        assert 'not configured' in exc_info.value.primary_reason
        assert 'not found' in exc_info.value.fallback_reason


class TestRefreshDashboardState:
    """Tests for publishing ingestion results into the dashboard state."""

    @pytest.mark.asyncio
    async def test_refresh_replaces_dataset(self, mock_executor, test_settings, snapshot_reader):
        state = DashboardState()

        dataset = await refresh_dashboard_state(
            state, mock_executor, test_settings, snapshot_reader
        )

        assert state.dataset is dataset
        assert state.source == IngestionSource.QUERY_SERVICE

    @pytest.mark.asyncio
    async def test_total_failure_keeps_previous_dataset(
        self, test_settings, missing_snapshot_reader
    ):
        previous = Dataset(source=IngestionSource.SNAPSHOT)
        state = DashboardState(dataset=previous)

        with pytest.raises(TotalIngestionFailure):
            await refresh_dashboard_state(state, None, test_settings, missing_snapshot_reader)

        assert state.dataset is previous
        assert not state.refresh_lock.locked()


# =============================================================================
# QUERY EXECUTOR AND QUERIES
# =============================================================================

class TestBigQueryQueryExecutor:
    """Tests for the BigQuery-backed executor."""

    @pytest.mark.asyncio
    async def test_execute_returns_row_dicts(self, mock_bigquery_client):
        mock_bigquery_client.query.return_value.result.return_value = [
            make_bigquery_row({'day': date(2024, 1, 1), 'visits': 3, 'payments': 2}),
        ]
        executor = BigQueryQueryExecutor(project='test-project', timeout=5.0)

        rows = await executor.execute('SELECT 1')

        assert rows == [{'day': date(2024, 1, 1), 'visits': 3, 'payments': 2}]
        mock_bigquery_client.query.assert_called_once_with('SELECT 1')
        mock_bigquery_client.query.return_value.result.assert_called_once_with(timeout=5.0)

    @pytest.mark.asyncio
    async def test_client_created_once(self, mock_bigquery_client):
        executor = BigQueryQueryExecutor(project='test-project')

        await executor.execute('SELECT 1')
        await executor.execute('SELECT 2')

        assert mock_bigquery_client.query.call_count == 2
        assert executor._client is mock_bigquery_client

    def test_build_query_executor_requires_project(self, test_settings, offline_settings):
        assert build_query_executor(offline_settings) is None
        executor = build_query_executor(test_settings)
        assert isinstance(executor, BigQueryQueryExecutor)
        assert executor.project == 'test-project'


class TestIngestionQueries:
    """Tests for the ingestion query builders."""

    def test_queries_reference_qualified_tables(self):
        queries = build_ingestion_queries('acme', 'finance', 'claims', 'gl', 10)

        assert set(queries) == {
            'revenue_by_date', 'expense_by_date', 'top_procedures',
            'revenue_by_physician', 'expense_by_physician', 'daily_utilization',
        }
        assert '`acme.finance.claims`' in queries['revenue_by_date']
        assert '`acme.finance.gl`' in queries['expense_by_date']

    def test_top_procedures_limit_is_clamped(self):
        assert 'LIMIT 1\n' in get_top_procedures_query('`t`', 0)
        assert 'LIMIT 25\n' in get_top_procedures_query('`t`', 25)


# =============================================================================
# SNAPSHOT READER
# =============================================================================

class TestSnapshotReader:
    """Tests for reading CSV snapshots with pandas."""

    def test_reads_rows_as_stripped_strings(self, tmp_path):
        path = tmp_path / 'claims.csv'
        path.write_text(
            'claim_id, service_date ,paid_amount\n'
            'C1, 2024-01-01 , 100\n'
            'C2,,\n'
        )

        rows = read_snapshot_rows(path)

        assert rows == [
            {'claim_id': 'C1', 'service_date': '2024-01-01', 'paid_amount': '100'},
            {'claim_id': 'C2', 'service_date': '', 'paid_amount': ''},
        ]

    @pytest.mark.asyncio
    async def test_async_reader_raises_for_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            await read_snapshot(tmp_path / 'missing.csv')

    @pytest.mark.asyncio
    async def test_snapshot_strategy_reads_csv_files(self, tmp_path, test_settings):
        claims = tmp_path / 'claims.csv'
        ledger = tmp_path / 'ledger.csv'
        claims.write_text(
            'claim_id,service_date,revenue_type,cpt_code,physician,visit_id,paid_amount\n'
            'C1,2024-03-07,Commercial,99213,Dr. Adams,V1,120.50\n'
        )
        ledger.write_text(
            'entry_id,posting_date,category,physician,amount\n'
            'E1,2024-03-07,Rent,,20\n'
        )
        settings = test_settings.model_copy(update={
            'claims_snapshot_path': str(claims),
            'ledger_snapshot_path': str(ledger),
        })

        outcome = await load_from_snapshots(settings, read_snapshot)

        assert isinstance(outcome, Ingested)
        assert outcome.dataset.revenue[0].amount == 120.5
        assert outcome.dataset.expenses[0].category == 'Rent'
