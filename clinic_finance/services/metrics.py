"""
Derived Metrics Service.

Scalar and tabular business metrics computed from the canonical dataset:

- build_margin_series: per-date revenue minus expense as "Margin" metric records
- cash_snapshot: revenue minus expense over a trailing 90-day window
- expense_run_rate: expense over a trailing 30-day window
- revenue_mix: all-time revenue by type
- select_profitability / toggle_profitability_mode / profitability_labels:
  the procedure-or-physician profitability table
- optimization_suggestions: up to three human-readable suggestions

Trailing windows are anchored on the latest date observed across revenue and
expenses (falling back to today only when there are no dates at all), so the
metrics stay meaningful against historical data. A window of W days covers the
dates d with anchor - W < d <= anchor.

Every function is pure and recomputes from its inputs on each call.
"""

from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from clinic_finance.models.enums import ProfitabilityMode
from clinic_finance.models.schemas import (
    ExpenseRecord,
    MetricRecord,
    ProfitabilityRow,
    ProfitabilityView,
    RevenueRecord,
)


# =============================================================================
# CONSTANTS
# =============================================================================

MARGIN_METRIC: str = 'Margin'
CAPACITY_METRIC: str = 'Capacity'
UTILIZATION_METRIC: str = 'Utilization'

DEFAULT_CASH_WINDOW_DAYS: int = 90
DEFAULT_RUN_RATE_WINDOW_DAYS: int = 30


# =============================================================================
# MARGIN SERIES
# =============================================================================

def build_margin_series(
    revenue: Sequence[RevenueRecord],
    expenses: Sequence[ExpenseRecord],
) -> List[MetricRecord]:
    """
    Build the daily margin series.

    Margin on a date is the revenue summed on that date minus the expense
    summed on that date. A date present on only one side still yields a
    record, with the missing side counted as 0.

    Args:
        revenue: Canonical revenue records.
        expenses: Canonical expense records.

    Returns:
        Margin records ordered by date.
    """
    totals: Dict[date, float] = {}
    for record in revenue:
        totals[record.date] = totals.get(record.date, 0.0) + record.amount
    for record in expenses:
        totals[record.date] = totals.get(record.date, 0.0) - record.amount

    return [
        MetricRecord(date=day, metric=MARGIN_METRIC, value=value)
        for day, value in sorted(totals.items())
    ]


# =============================================================================
# TRAILING WINDOW SCALARS
# =============================================================================

def reference_date(
    revenue: Sequence[RevenueRecord],
    expenses: Sequence[ExpenseRecord],
    today: Optional[date] = None,
) -> date:
    """Latest observed date across both datasets, or today when there is none."""
    dates = [r.date for r in revenue] + [e.date for e in expenses]
    if dates:
        return max(dates)
    return today or date.today()


def _window_bounds(anchor: date, window_days: int) -> Tuple[date, date]:
    return anchor - timedelta(days=window_days), anchor


def _sum_in_window(records, lower: date, upper: date) -> float:
    return float(sum(r.amount for r in records if lower < r.date <= upper))


def cash_snapshot(
    revenue: Sequence[RevenueRecord],
    expenses: Sequence[ExpenseRecord],
    window_days: int = DEFAULT_CASH_WINDOW_DAYS,
    today: Optional[date] = None,
) -> float:
    """
    Revenue minus expense over the trailing cash window.

    Args:
        revenue: Canonical revenue records.
        expenses: Canonical expense records.
        window_days: Window length in days.
        today: Anchor used only when neither dataset has a date.

    Returns:
        Net amount as a plain number.
    """
    lower, upper = _window_bounds(reference_date(revenue, expenses, today), window_days)
    return _sum_in_window(revenue, lower, upper) - _sum_in_window(expenses, lower, upper)


def expense_run_rate(
    revenue: Sequence[RevenueRecord],
    expenses: Sequence[ExpenseRecord],
    window_days: int = DEFAULT_RUN_RATE_WINDOW_DAYS,
    today: Optional[date] = None,
) -> float:
    """Expense summed over the trailing run-rate window (same anchor as cash)."""
    lower, upper = _window_bounds(reference_date(revenue, expenses, today), window_days)
    return _sum_in_window(expenses, lower, upper)


def revenue_mix(revenue: Sequence[RevenueRecord]) -> Dict[str, float]:
    """Total revenue per type, in first-seen type order, independent of time."""
    totals: Dict[str, float] = {}
    for record in revenue:
        totals[record.type] = totals.get(record.type, 0.0) + record.amount
    return dict(totals)


# =============================================================================
# PROFITABILITY VIEW
# =============================================================================

def select_profitability(
    view: ProfitabilityView,
    mode: ProfitabilityMode,
) -> List[ProfitabilityRow]:
    """Rows of the breakdown selected by the mode flag."""
    return view.rows_for(mode)


def toggle_profitability_mode(mode: ProfitabilityMode) -> ProfitabilityMode:
    """Flip between the procedure and physician breakdowns."""
    if ProfitabilityMode(mode) == ProfitabilityMode.PROCEDURE:
        return ProfitabilityMode.PHYSICIAN
    return ProfitabilityMode.PROCEDURE


def profitability_labels(mode: ProfitabilityMode) -> Tuple[str, str]:
    """
    Panel title and toggle caption for a mode.

    Returns:
        (title, toggle_label), e.g. ("Profitability by Procedure", "View by Physician").
    """
    if ProfitabilityMode(mode) == ProfitabilityMode.PROCEDURE:
        return 'Profitability by Procedure', 'View by Physician'
    return 'Profitability by Physician', 'View by Procedure'


# =============================================================================
# OPTIMIZATION HEURISTICS
# =============================================================================

def _top_margin_procedure(rows: Sequence[ProfitabilityRow]) -> Optional[ProfitabilityRow]:
    best: Optional[ProfitabilityRow] = None
    for row in rows:
        # strict comparison keeps the first row on ties
        if best is None or row.margin > best.margin:
            best = row
    return best


def _top_revenue_physician(rows: Sequence[ProfitabilityRow]) -> Optional[ProfitabilityRow]:
    if not rows:
        return None
    return sorted(rows, key=lambda row: row.revenue, reverse=True)[0]


def optimization_suggestions(
    profitability: ProfitabilityView,
    trend: Sequence[MetricRecord],
) -> List[str]:
    """
    Derive up to three optimization suggestions.

    1. The highest-margin procedure (first row wins ties)
    2. The highest-revenue physician (stable sort by revenue, descending)
    3. Average utilization (total utilization / utilization points), only when
       both the capacity and the utilization series are non-empty

    Args:
        profitability: Current profitability view.
        trend: Capacity and utilization metric records.

    Returns:
        Suggestion strings in the order above; omitted items are skipped.
    """
    suggestions: List[str] = []

    procedure = _top_margin_procedure(profitability.procedure)
    if procedure is not None:
        suggestions.append(
            f"Prioritize {procedure.name}: highest-margin procedure "
            f"({procedure.margin:,.0f} on {procedure.revenue:,.0f} revenue)"
        )

    physician = _top_revenue_physician(profitability.physician)
    if physician is not None:
        suggestions.append(
            f"Extend scheduling for {physician.name}: top revenue physician "
            f"({physician.revenue:,.0f} revenue)"
        )

    capacity = [r.value for r in trend if r.metric == CAPACITY_METRIC]
    utilization = [r.value for r in trend if r.metric == UTILIZATION_METRIC]
    if capacity and utilization:
        average = sum(utilization) / len(utilization)
        suggestions.append(
            f"Average utilization is {average:.1f}% across {len(utilization)} days; "
            f"peak capacity {max(capacity):,.0f} visits per day"
        )

    return suggestions


__all__ = [
    'MARGIN_METRIC',
    'CAPACITY_METRIC',
    'UTILIZATION_METRIC',
    'DEFAULT_CASH_WINDOW_DAYS',
    'DEFAULT_RUN_RATE_WINDOW_DAYS',
    'build_margin_series',
    'reference_date',
    'cash_snapshot',
    'expense_run_rate',
    'revenue_mix',
    'select_profitability',
    'toggle_profitability_mode',
    'profitability_labels',
    'optimization_suggestions',
]
