"""
Ingestion Queries Module for the Clinic Finance backend.

Provides the BigQuery Standard SQL queries issued by the query service ingestion
strategy. Every query aggregates remotely so only small result sets travel back:

- get_revenue_by_date_query: paid amount per service day and revenue type
- get_expense_by_date_query: ledger amount per posting day and category
- get_top_procedures_query: top-N procedures (CPT codes) by paid amount
- get_revenue_by_physician_query: paid amount and visit count per physician
- get_expense_by_physician_query: ledger amount per physician (direct expense)
- get_daily_utilization_query: visits and paid claims per service day

Result columns match the QUERY_* normalization tables in
clinic_finance.services.normalization. Labels are returned raw (possibly NULL);
fallback labels are applied during normalization, not in SQL.
"""

from typing import Dict


# =============================================================================
# CONSTANTS
# =============================================================================

# Upper bound on the procedures returned by get_top_procedures_query
MAX_PROCEDURE_LIMIT: int = 500


# =============================================================================
# HELPERS
# =============================================================================

def qualified_table(project: str, dataset: str, table: str) -> str:
    """Backtick-quoted fully qualified BigQuery table name."""
    return f"`{project}.{dataset}.{table}`"


# =============================================================================
# REVENUE / EXPENSE BY DATE
# =============================================================================

def get_revenue_by_date_query(claims_table: str) -> str:
    """
    Generate SQL summing paid claim amounts per service day and revenue type.

    Args:
        claims_table: Fully qualified claims table.

    Returns:
        Query returning columns day, revenue_type, total_paid.
    """
    return f"""
    -- Revenue by service date and revenue type
    SELECT
        DATE(service_date) AS day,
        revenue_type,
        SUM(COALESCE(paid_amount, 0)) AS total_paid
    FROM {claims_table}
    WHERE service_date IS NOT NULL
    GROUP BY day, revenue_type
    ORDER BY day, revenue_type
    """


def get_expense_by_date_query(ledger_table: str) -> str:
    """
    Generate SQL summing ledger amounts per posting day and expense category.

    Returns:
        Query returning columns day, category, total_amount.
    """
    return f"""
    -- Expense by posting date and category
    SELECT
        DATE(posting_date) AS day,
        category,
        SUM(COALESCE(amount, 0)) AS total_amount
    FROM {ledger_table}
    WHERE posting_date IS NOT NULL
    GROUP BY day, category
    ORDER BY day, category
    """


# =============================================================================
# ENTITY BREAKDOWNS
# =============================================================================

def get_top_procedures_query(claims_table: str, limit: int = 10) -> str:
    """
    Generate SQL ranking procedures by paid amount.

    Args:
        claims_table: Fully qualified claims table.
        limit: Number of procedures to return (clamped to 1..MAX_PROCEDURE_LIMIT).

    Returns:
        Query returning columns cpt_code, revenue, visits.
    """
    limit = max(1, min(int(limit), MAX_PROCEDURE_LIMIT))
    return f"""
    -- Top {limit} procedures by revenue
    SELECT
        cpt_code,
        SUM(COALESCE(paid_amount, 0)) AS revenue,
        COUNT(DISTINCT visit_id) AS visits
    FROM {claims_table}
    GROUP BY cpt_code
    ORDER BY revenue DESC, cpt_code
    LIMIT {limit}
    """


def get_revenue_by_physician_query(claims_table: str) -> str:
    """
    Generate SQL summing paid amounts and counting visits per physician.

    Returns:
        Query returning columns physician, revenue, visits.
    """
    return f"""
    -- Revenue and visits by physician
    SELECT
        physician,
        SUM(COALESCE(paid_amount, 0)) AS revenue,
        COUNT(DISTINCT visit_id) AS visits
    FROM {claims_table}
    GROUP BY physician
    ORDER BY revenue DESC, physician
    """


def get_expense_by_physician_query(ledger_table: str) -> str:
    """
    Generate SQL summing ledger amounts attributed to a physician.

    Entries without a physician are excluded; those physicians get an
    estimated expense instead.

    Returns:
        Query returning columns physician, expense.
    """
    return f"""
    -- Direct expense by physician
    SELECT
        physician,
        SUM(COALESCE(amount, 0)) AS expense
    FROM {ledger_table}
    WHERE physician IS NOT NULL
      AND TRIM(physician) != ''
    GROUP BY physician
    ORDER BY physician
    """


# =============================================================================
# UTILIZATION
# =============================================================================

def get_daily_utilization_query(claims_table: str) -> str:
    """
    Generate SQL counting visits and paid claims per service day.

    Returns:
        Query returning columns day, visits, payments.
    """
    return f"""
    -- Daily visit and payment utilization
    SELECT
        DATE(service_date) AS day,
        COUNT(DISTINCT visit_id) AS visits,
        COUNTIF(COALESCE(paid_amount, 0) > 0) AS payments
    FROM {claims_table}
    WHERE service_date IS NOT NULL
    GROUP BY day
    ORDER BY day
    """


# =============================================================================
# QUERY SET
# =============================================================================

def build_ingestion_queries(
    project: str,
    dataset: str,
    claims_table: str,
    ledger_table: str,
    top_procedure_limit: int = 10,
) -> Dict[str, str]:
    """
    Build the full set of ingestion queries keyed by purpose.

    Args:
        project: BigQuery project ID.
        dataset: Dataset holding both tables.
        claims_table: Claims table name.
        ledger_table: General-ledger table name.
        top_procedure_limit: Procedures kept by the top-N query.

    Returns:
        Dict with keys revenue_by_date, expense_by_date, top_procedures,
        revenue_by_physician, expense_by_physician, daily_utilization.
    """
    claims = qualified_table(project, dataset, claims_table)
    ledger = qualified_table(project, dataset, ledger_table)
    return {
        'revenue_by_date': get_revenue_by_date_query(claims),
        'expense_by_date': get_expense_by_date_query(ledger),
        'top_procedures': get_top_procedures_query(claims, top_procedure_limit),
        'revenue_by_physician': get_revenue_by_physician_query(claims),
        'expense_by_physician': get_expense_by_physician_query(ledger),
        'daily_utilization': get_daily_utilization_query(claims),
    }


__all__ = [
    'MAX_PROCEDURE_LIMIT',
    'qualified_table',
    'get_revenue_by_date_query',
    'get_expense_by_date_query',
    'get_top_procedures_query',
    'get_revenue_by_physician_query',
    'get_expense_by_physician_query',
    'get_daily_utilization_query',
    'build_ingestion_queries',
]
