"""
Enumeration definitions for the Clinic Finance backend.

All enums inherit from both `str` and `Enum` so they serialize cleanly inside
Pydantic models and can be used directly as FastAPI query parameters.
"""

from enum import Enum


class Granularity(str, Enum):
    """
    Bucketing unit for time series aggregation.

    - day: one bucket per calendar date
    - week: buckets start on Monday
    - month: buckets start on the 1st of the month
    """
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class ProfitabilityMode(str, Enum):
    """
    Which side of the profitability view is currently displayed.

    The view always carries both breakdowns; the mode only selects one.
    """
    PROCEDURE = "procedure"
    PHYSICIAN = "physician"


class IngestionSource(str, Enum):
    """
    Origin of the dataset currently held by the dashboard.

    - query_service: primary strategy, aggregated remotely by BigQuery
    - snapshot: fallback strategy, aggregated locally from CSV snapshots
    - empty: nothing has been ingested yet
    """
    QUERY_SERVICE = "query_service"
    SNAPSHOT = "snapshot"
    EMPTY = "empty"
