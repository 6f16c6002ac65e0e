"""
Clinic Finance Backend Package.

FastAPI service layer for the clinic financial dashboard. Ingests clinical
claims and general-ledger entries from BigQuery (or CSV snapshots when the
query service is unavailable), normalizes them into a canonical dataset and
serves bucketed trends and business metrics.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration, query execution, snapshot reading and dependencies
    - models: Pydantic schemas and enums
    - services: Ingestion, bucketing, aggregation and metrics
    - sql: BigQuery ingestion queries
"""

__version__ = "1.0.0"
