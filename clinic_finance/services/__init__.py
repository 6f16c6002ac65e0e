"""
Clinic Finance Services Module

This module contains the business logic services of the Clinic Finance backend.
Apart from the dashboard state, every service is stateless and recomputes its
results from its inputs.

Services:
- normalization: Declarative raw-row to canonical-record tables
- ingestion: Query service / snapshot strategies and canonical dataset building
- periods: Calendar bucketing (day, week, month) and default windows
- aggregation: Multi-series time bucketing for charts
- metrics: Cash snapshot, run-rate, margin, revenue mix, profitability, suggestions
- dashboard_state: Current dataset and profitability mode shared by the API

All services are designed to be consumed by the API layer (clinic_finance/api/).
"""

# =============================================================================
# Normalization Service Exports
# =============================================================================

from clinic_finance.services.normalization import (
    FieldRule,
    normalize_row,
    normalize_rows,
    parse_amount,
    parse_calendar_date,
    parse_count,
    parse_label,
)

# =============================================================================
# Period Bucketing Exports
# =============================================================================

from clinic_finance.services.periods import (
    bucket_start,
    compute_range,
    default_window,
    format_bucket_label,
    generate_buckets,
    next_bucket,
)

# =============================================================================
# Aggregation Service Exports
# =============================================================================

from clinic_finance.services.aggregation import (
    DEFAULT_SERIES,
    aggregate,
)

# =============================================================================
# Metrics Service Exports
# =============================================================================

from clinic_finance.services.metrics import (
    build_margin_series,
    cash_snapshot,
    expense_run_rate,
    optimization_suggestions,
    profitability_labels,
    revenue_mix,
    select_profitability,
    toggle_profitability_mode,
)

# =============================================================================
# Dashboard State Exports
# =============================================================================

from clinic_finance.services.dashboard_state import DashboardState

# =============================================================================
# Ingestion Service Exports
# =============================================================================

from clinic_finance.services.ingestion import (
    Failed,
    Ingested,
    IngestionOutcome,
    SourceAggregates,
    SourceUnavailable,
    TotalIngestionFailure,
    build_dataset,
    load_canonical_dataset,
    load_from_query_service,
    load_from_snapshots,
    refresh_dashboard_state,
)


__all__ = [
    # ----- Normalization Service -----
    'FieldRule',
    'normalize_row',
    'normalize_rows',
    'parse_amount',
    'parse_calendar_date',
    'parse_count',
    'parse_label',
    # ----- Period Bucketing -----
    'bucket_start',
    'compute_range',
    'default_window',
    'format_bucket_label',
    'generate_buckets',
    'next_bucket',
    # ----- Aggregation Service -----
    'DEFAULT_SERIES',
    'aggregate',
    # ----- Metrics Service -----
    'build_margin_series',
    'cash_snapshot',
    'expense_run_rate',
    'optimization_suggestions',
    'profitability_labels',
    'revenue_mix',
    'select_profitability',
    'toggle_profitability_mode',
    # ----- Dashboard State -----
    'DashboardState',
    # ----- Ingestion Service -----
    'Failed',
    'Ingested',
    'IngestionOutcome',
    'SourceAggregates',
    'SourceUnavailable',
    'TotalIngestionFailure',
    'build_dataset',
    'load_canonical_dataset',
    'load_from_query_service',
    'load_from_snapshots',
    'refresh_dashboard_state',
]
