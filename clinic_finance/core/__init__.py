"""
Core infrastructure package for the Clinic Finance backend.

Provides:
- Configuration management via pydantic-settings
- Query execution against BigQuery via google-cloud-bigquery
- CSV snapshot reading via pandas
- FastAPI dependency injection utilities

This module re-exports key components from submodules for convenient importing:

    from clinic_finance.core import get_settings, build_query_executor, SettingsDep

Components Re-exported:
    Settings: Pydantic settings class with all configuration parameters
    get_settings: Function returning the cached Settings singleton
    QueryExecutor: Protocol for async SQL execution
    BigQueryQueryExecutor: BigQuery-backed QueryExecutor
    build_query_executor: Factory returning None when BigQuery is not configured
    read_snapshot: Async CSV snapshot reader
    SettingsDep, DashboardStateDep, QueryExecutorDep, SnapshotReaderDep: aliases
"""

# =============================================================================
# Re-exports from clinic_finance.core.config
# =============================================================================
from clinic_finance.core.config import Settings, get_settings

# =============================================================================
# Re-exports from clinic_finance.core.query_executor
# =============================================================================
from clinic_finance.core.query_executor import (
    QueryExecutor,
    BigQueryQueryExecutor,
    build_query_executor,
)

# =============================================================================
# Re-exports from clinic_finance.core.snapshot_reader
# =============================================================================
from clinic_finance.core.snapshot_reader import read_snapshot, read_snapshot_rows

# =============================================================================
# Re-exports from clinic_finance.core.dependencies
# =============================================================================
from clinic_finance.core.dependencies import (
    get_settings_dependency,
    get_dashboard_state,
    get_query_executor,
    get_snapshot_reader,
    SettingsDep,
    DashboardStateDep,
    QueryExecutorDep,
    SnapshotReaderDep,
)

__all__ = [
    # Configuration management (from config.py)
    'Settings',
    'get_settings',
    # Query execution (from query_executor.py)
    'QueryExecutor',
    'BigQueryQueryExecutor',
    'build_query_executor',
    # Snapshots (from snapshot_reader.py)
    'read_snapshot',
    'read_snapshot_rows',
    # FastAPI dependency injection (from dependencies.py)
    'get_settings_dependency',
    'get_dashboard_state',
    'get_query_executor',
    'get_snapshot_reader',
    'SettingsDep',
    'DashboardStateDep',
    'QueryExecutorDep',
    'SnapshotReaderDep',
]
