"""
SQL Query Module for the Clinic Finance backend.

Provides the BigQuery queries issued by the query service ingestion strategy.
All query builders are re-exported here so callers can import from
clinic_finance.sql directly.

Example usage:
    from clinic_finance.sql import build_ingestion_queries

    queries = build_ingestion_queries(
        project='acme-clinic',
        dataset='finance',
        claims_table='claims',
        ledger_table='general_ledger',
        top_procedure_limit=10,
    )
    sql = queries['revenue_by_date']
"""

from clinic_finance.sql.ingestion_queries import (
    build_ingestion_queries,
    get_daily_utilization_query,
    get_expense_by_date_query,
    get_expense_by_physician_query,
    get_revenue_by_date_query,
    get_revenue_by_physician_query,
    get_top_procedures_query,
    qualified_table,
    MAX_PROCEDURE_LIMIT,
)

__all__ = [
    'build_ingestion_queries',
    'get_daily_utilization_query',
    'get_expense_by_date_query',
    'get_expense_by_physician_query',
    'get_revenue_by_date_query',
    'get_revenue_by_physician_query',
    'get_top_procedures_query',
    'qualified_table',
    'MAX_PROCEDURE_LIMIT',
]
