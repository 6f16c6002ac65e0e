"""
FastAPI router module for the financial dashboard endpoints.

Each endpoint backs one dashboard panel and recomputes its aggregates from the
current canonical dataset on every request (nothing is cached).

Key Endpoints:
- GET /overview: Cash snapshot, expense run-rate and the margin trend
- GET /revenue: Revenue trend by type and the revenue mix
- GET /expenses: Expense trend by category and the run-rate
- GET /profitability: Profitability table for the current mode
- POST /profitability/toggle: Flip between procedure and physician views
- GET /optimize: Optimization suggestions and the capacity/utilization trend
- POST /refresh: Re-run ingestion and publish the new dataset

Chart endpoints take an optional `granularity` query parameter (day, week,
month); the configured default_granularity applies when it is omitted.
Invalid values are rejected by FastAPI with HTTP 422.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from clinic_finance.core.dependencies import (
    DashboardStateDep,
    QueryExecutorDep,
    SettingsDep,
    SnapshotReaderDep,
)
from clinic_finance.models import (
    Granularity,
    ExpenseResponse,
    IngestionStatusResponse,
    OptimizeResponse,
    OverviewResponse,
    ProfitabilityResponse,
    ProfitabilityRowResponse,
    RevenueResponse,
)
from clinic_finance.services.aggregation import aggregate
from clinic_finance.services.dashboard_state import DashboardState
from clinic_finance.services.ingestion import (
    TotalIngestionFailure,
    refresh_dashboard_state,
)
from clinic_finance.services.metrics import (
    UTILIZATION_METRIC,
    build_margin_series,
    cash_snapshot,
    expense_run_rate,
    optimization_suggestions,
    profitability_labels,
    revenue_mix,
    select_profitability,
)


# =============================================================================
# Module Configuration
# =============================================================================

logger = logging.getLogger(__name__)

router = APIRouter()

GRANULARITY_QUERY = Query(
    default=None,
    description="Bucketing unit: day, week or month (defaults to the configured granularity)",
)


# =============================================================================
# Helper Functions
# =============================================================================

def _profitability_response(state: DashboardState) -> ProfitabilityResponse:
    mode = state.profitability_mode
    title, toggle_label = profitability_labels(mode)
    rows = select_profitability(state.dataset.profitability, mode)
    return ProfitabilityResponse(
        mode=mode,
        title=title,
        toggle_label=toggle_label,
        rows=[ProfitabilityRowResponse.from_row(row) for row in rows],
    )


# =============================================================================
# Endpoints
# =============================================================================

@router.get("/overview", response_model=OverviewResponse)
async def get_overview(
    state: DashboardStateDep,
    settings: SettingsDep,
    granularity: Optional[Granularity] = GRANULARITY_QUERY,
) -> OverviewResponse:
    """
    Overview panel: cash snapshot, expense run-rate and bucketed margin.

    The margin trend is a single "Margin" series (revenue minus expense per
    bucket); buckets where only one side has data still count.
    """
    dataset = state.dataset
    granularity = granularity or settings.default_granularity
    margin = build_margin_series(dataset.revenue, dataset.expenses)

    return OverviewResponse(
        cash_snapshot=cash_snapshot(
            dataset.revenue, dataset.expenses, window_days=settings.cash_window_days
        ),
        run_rate=expense_run_rate(
            dataset.revenue, dataset.expenses, window_days=settings.run_rate_window_days
        ),
        margin_trend=aggregate(
            margin, granularity, value_field='value', series_field='metric'
        ),
        source=dataset.source,
    )


@router.get("/revenue", response_model=RevenueResponse)
async def get_revenue(
    state: DashboardStateDep,
    settings: SettingsDep,
    granularity: Optional[Granularity] = GRANULARITY_QUERY,
) -> RevenueResponse:
    """Revenue panel: trend split by revenue type plus the all-time mix."""
    dataset = state.dataset
    granularity = granularity or settings.default_granularity
    return RevenueResponse(
        trend=aggregate(dataset.revenue, granularity, series_field='type'),
        mix=revenue_mix(dataset.revenue),
    )


@router.get("/expenses", response_model=ExpenseResponse)
async def get_expenses(
    state: DashboardStateDep,
    settings: SettingsDep,
    granularity: Optional[Granularity] = GRANULARITY_QUERY,
) -> ExpenseResponse:
    """Expense panel: trend split by category plus the trailing run-rate."""
    dataset = state.dataset
    granularity = granularity or settings.default_granularity
    return ExpenseResponse(
        trend=aggregate(dataset.expenses, granularity, series_field='category'),
        run_rate=expense_run_rate(
            dataset.revenue, dataset.expenses, window_days=settings.run_rate_window_days
        ),
    )


@router.get("/profitability", response_model=ProfitabilityResponse)
async def get_profitability(state: DashboardStateDep) -> ProfitabilityResponse:
    """Profitability table for the current mode, with margin per row."""
    return _profitability_response(state)


@router.post("/profitability/toggle", response_model=ProfitabilityResponse)
async def toggle_profitability(state: DashboardStateDep) -> ProfitabilityResponse:
    """Flip the profitability mode and return the newly selected table."""
    mode = state.toggle_profitability_mode()
    logger.info(f"Profitability view switched to {mode.value}")
    return _profitability_response(state)


@router.get("/optimize", response_model=OptimizeResponse)
async def get_optimize(
    state: DashboardStateDep,
    settings: SettingsDep,
    granularity: Optional[Granularity] = GRANULARITY_QUERY,
) -> OptimizeResponse:
    """Optimization panel: suggestions and the capacity/utilization trend."""
    dataset = state.dataset
    granularity = granularity or settings.default_granularity
    return OptimizeResponse(
        suggestions=optimization_suggestions(
            dataset.profitability, dataset.optimization_trend
        ),
        trend=aggregate(
            dataset.optimization_trend,
            granularity,
            value_field='value',
            series_field='metric',
            mean_series=(UTILIZATION_METRIC,),
        ),
    )


@router.post("/refresh", response_model=IngestionStatusResponse)
async def refresh(
    state: DashboardStateDep,
    settings: SettingsDep,
    executor: QueryExecutorDep,
    reader: SnapshotReaderDep,
) -> IngestionStatusResponse:
    """
    Re-run ingestion and publish the new dataset.

    Concurrent refreshes are serialized. When every source fails the previous
    dataset stays in place and HTTP 503 is returned.

    Raises:
        HTTPException(503): If both the query service and the snapshots failed.
    """
    try:
        dataset = await refresh_dashboard_state(state, executor, settings, reader)
    except TotalIngestionFailure as e:
        raise HTTPException(
            status_code=503,
            detail={
                'message': 'All ingestion sources are unavailable',
                'primary_reason': e.primary_reason,
                'fallback_reason': e.fallback_reason,
            },
        )

    return IngestionStatusResponse(
        source=dataset.source,
        revenue_records=len(dataset.revenue),
        expense_records=len(dataset.expenses),
        trend_points=len(dataset.optimization_trend),
        procedures=len(dataset.profitability.procedure),
        physicians=len(dataset.profitability.physician),
    )
