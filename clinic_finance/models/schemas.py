"""
Pydantic models for the Clinic Finance backend.

This module holds the canonical record model shared by every service (revenue,
expense and metric records, profitability rows and views), the aggregation
result handed to chart consumers, the ingested dataset container, and the
response models of the dashboard API.

Canonical records are immutable once produced (frozen models). Dates are plain
calendar dates and serialize as YYYY-MM-DD.

All models use Pydantic v2 syntax.
"""

from datetime import date as DateType
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from clinic_finance.models.enums import (
    Granularity,
    IngestionSource,
    ProfitabilityMode,
)


# =============================================================================
# Canonical Records
# =============================================================================


class RevenueRecord(BaseModel):
    """
    One revenue observation: paid claim amount for a service date and revenue type.

    Produced already summed per (date, type) by both ingestion strategies.
    """
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {"date": "2024-03-07", "type": "Commercial", "amount": 1840.0}
        }
    )

    date: DateType = Field(..., description="Service date")
    type: str = Field(..., description="Revenue type label (payer class)")
    amount: float = Field(default=0.0, ge=0, description="Paid amount")


class ExpenseRecord(BaseModel):
    """One expense observation: ledger amount for a posting date and category."""
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {"date": "2024-03-07", "category": "Supplies", "amount": 420.0}
        }
    )

    date: DateType = Field(..., description="Posting date")
    category: str = Field(..., description="Expense category label")
    amount: float = Field(default=0.0, ge=0, description="Posted amount")


class MetricRecord(BaseModel):
    """
    Generic time series point.

    Used for the margin series and for the capacity/utilization trend.
    """
    model_config = ConfigDict(frozen=True)

    date: DateType = Field(..., description="Observation date")
    metric: str = Field(..., description="Series name, e.g. Margin or Capacity")
    value: float = Field(default=0.0, description="Observed value (may be negative)")


class ProfitabilityRow(BaseModel):
    """
    Revenue and expense attributed to one procedure or physician.

    The margin is derived on demand and never stored.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Procedure code or physician name")
    revenue: float = Field(default=0.0, description="Attributed revenue")
    expense: float = Field(default=0.0, description="Direct or estimated expense")

    @property
    def margin(self) -> float:
        return self.revenue - self.expense


class ProfitabilityView(BaseModel):
    """Both profitability breakdowns; each list may be empty but is always present."""
    model_config = ConfigDict(frozen=True)

    procedure: List[ProfitabilityRow] = Field(default_factory=list)
    physician: List[ProfitabilityRow] = Field(default_factory=list)

    def rows_for(self, mode: ProfitabilityMode) -> List[ProfitabilityRow]:
        if ProfitabilityMode(mode) == ProfitabilityMode.PHYSICIAN:
            return self.physician
        return self.procedure


class Dataset(BaseModel):
    """
    Everything one ingestion cycle produces.

    A dataset is replaced wholesale on each successful ingestion and is never
    mutated in place.
    """
    model_config = ConfigDict(frozen=True)

    revenue: List[RevenueRecord] = Field(default_factory=list)
    expenses: List[ExpenseRecord] = Field(default_factory=list)
    optimization_trend: List[MetricRecord] = Field(default_factory=list)
    profitability: ProfitabilityView = Field(default_factory=ProfitabilityView)
    source: IngestionSource = IngestionSource.EMPTY

    @classmethod
    def empty(cls) -> "Dataset":
        return cls()


# =============================================================================
# Aggregation Output
# =============================================================================


class AggregationResult(BaseModel):
    """
    Time-bucketed, multi-series aggregate ready for charting.

    Index i of labels, buckets and every series array refers to the same period.
    Series keep the order in which their names were first observed.
    """
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "labels": ["Jan 2024", "Feb 2024"],
                "series": {"Commercial": [1200.0, 900.0], "Medicare": [300.0, 0.0]},
                "buckets": ["2024-01-01", "2024-02-01"],
            }
        }
    )

    labels: List[str] = Field(..., description="Display label per bucket")
    series: Dict[str, List[float]] = Field(..., description="Values per series, one per bucket")
    buckets: List[DateType] = Field(..., description="Start date of each bucket")

    @model_validator(mode='after')
    def _check_aligned(self) -> "AggregationResult":
        n = len(self.buckets)
        if len(self.labels) != n:
            raise ValueError(f"labels has {len(self.labels)} entries for {n} buckets")
        for name, values in self.series.items():
            if len(values) != n:
                raise ValueError(f"series '{name}' has {len(values)} entries for {n} buckets")
        return self


# =============================================================================
# Dashboard API Responses
# =============================================================================


class OverviewResponse(BaseModel):
    """Cash position, burn and margin trend for the overview panel."""
    cash_snapshot: float = Field(..., description="Revenue minus expense over the cash window")
    run_rate: float = Field(..., description="Expense over the run-rate window")
    margin_trend: AggregationResult
    source: IngestionSource


class RevenueResponse(BaseModel):
    """Revenue trend by type plus the all-time revenue mix."""
    trend: AggregationResult
    mix: Dict[str, float] = Field(default_factory=dict)


class ExpenseResponse(BaseModel):
    """Expense trend by category plus the trailing run-rate."""
    trend: AggregationResult
    run_rate: float


class ProfitabilityRowResponse(BaseModel):
    name: str
    revenue: float
    expense: float
    margin: float

    @classmethod
    def from_row(cls, row: ProfitabilityRow) -> "ProfitabilityRowResponse":
        return cls(name=row.name, revenue=row.revenue, expense=row.expense, margin=row.margin)


class ProfitabilityResponse(BaseModel):
    """The profitability table for the currently selected mode."""
    mode: ProfitabilityMode
    title: str = Field(..., description="Panel title, e.g. 'Profitability by Procedure'")
    toggle_label: str = Field(..., description="Caption of the mode toggle")
    rows: List[ProfitabilityRowResponse] = Field(default_factory=list)


class OptimizeResponse(BaseModel):
    """Optimization suggestions and the capacity/utilization trend behind them."""
    suggestions: List[str] = Field(default_factory=list)
    trend: AggregationResult


class IngestionStatusResponse(BaseModel):
    """Outcome of a dataset refresh."""
    source: IngestionSource
    revenue_records: int = Field(..., ge=0)
    expense_records: int = Field(..., ge=0)
    trend_points: int = Field(..., ge=0)
    procedures: int = Field(..., ge=0)
    physicians: int = Field(..., ge=0)
    granularity: Optional[Granularity] = None
