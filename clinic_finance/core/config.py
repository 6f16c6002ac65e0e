"""
Settings and environment management module for the Clinic Finance backend.

This module provides centralized configuration management using pydantic-settings,
which automatically loads settings from environment variables and .env files.

Key Features:
- Environment variable validation and type coercion
- Sensible defaults for local development against the bundled CSV snapshots
- Singleton pattern via @lru_cache for efficient access
- Optional BigQuery credentials (the query service strategy is disabled without them)

Environment Variables:
- BIGQUERY_PROJECT: BigQuery project ID hosting the claims and ledger tables
- BIGQUERY_DATASET: Dataset containing the claims and ledger tables
- CLAIMS_TABLE / LEDGER_TABLE: Table names inside the dataset
- QUERY_TIMEOUT_SECONDS: Per-query timeout handed to the BigQuery client
- CLAIMS_SNAPSHOT_PATH / LEDGER_SNAPSHOT_PATH: CSV snapshots used in degraded mode
- TOP_PROCEDURE_LIMIT: Number of procedures kept in the profitability view
- CASH_WINDOW_DAYS / RUN_RATE_WINDOW_DAYS: Trailing windows for scalar metrics
- DEFAULT_GRANULARITY: Bucketing unit used when a request does not pick one
- LOG_LEVEL: Root logging level

Usage:
    from clinic_finance.core.config import get_settings

    settings = get_settings()
    if settings.bigquery_project:
        ...
"""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from clinic_finance.models.enums import Granularity


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        bigquery_project: BigQuery project ID. When unset the query service
            strategy reports itself unavailable and snapshots are used.
        bigquery_dataset: Dataset holding the claims and ledger tables.
        claims_table: Clinical claims table (one row per claim line).
        ledger_table: General-ledger table (one row per posted entry).
        query_timeout_seconds: Timeout applied to each BigQuery job.
        claims_snapshot_path: Path of the claims CSV snapshot.
        ledger_snapshot_path: Path of the general-ledger CSV snapshot.
        top_procedure_limit: Procedures kept in the profitability view.
        cash_window_days: Trailing window of the cash snapshot.
        run_rate_window_days: Trailing window of the expense run-rate.
        default_granularity: Bucketing unit for chart endpoints.
        log_level: Root logging level name.
        cors_origins: Origins allowed to call the API from a browser.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False,
    )

    # =========================================================================
    # Query service (BigQuery)
    # =========================================================================

    bigquery_project: Optional[str] = None
    bigquery_dataset: str = 'clinic_finance'
    claims_table: str = 'claims'
    ledger_table: str = 'general_ledger'
    query_timeout_seconds: float = 30.0

    # =========================================================================
    # Snapshot fallback
    # =========================================================================

    claims_snapshot_path: str = 'data/claims.csv'
    ledger_snapshot_path: str = 'data/ledger.csv'

    # =========================================================================
    # Metric defaults
    # =========================================================================

    # Procedures beyond this rank are not shown in the profitability table
    top_procedure_limit: int = 10

    # Windows are anchored on the latest observed date, not on today
    cash_window_days: int = 90
    run_rate_window_days: int = 30

    default_granularity: Granularity = Granularity.MONTH

    # =========================================================================
    # Service
    # =========================================================================

    log_level: str = 'INFO'
    cors_origins: List[str] = [
        'http://localhost:3000',
        'http://127.0.0.1:3000',
    ]


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Returns:
        Settings: The cached settings instance.

    Note:
        To refresh settings in tests, clear the cache:
        >>> get_settings.cache_clear()
    """
    return Settings()
