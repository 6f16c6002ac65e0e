"""
Package initialization file for Clinic Finance models.

Re-exports the enumerations and Pydantic schemas so other modules can import
them from clinic_finance.models directly.

Usage:
    from clinic_finance.models import (
        Granularity,
        RevenueRecord,
        AggregationResult,
    )
"""

# =============================================================================
# Enums
# =============================================================================

from clinic_finance.models.enums import (
    Granularity,
    IngestionSource,
    ProfitabilityMode,
)

# =============================================================================
# Schemas
# =============================================================================

from clinic_finance.models.schemas import (
    # Canonical records
    RevenueRecord,
    ExpenseRecord,
    MetricRecord,
    ProfitabilityRow,
    ProfitabilityView,
    Dataset,
    # Aggregation output
    AggregationResult,
    # Dashboard API responses
    OverviewResponse,
    RevenueResponse,
    ExpenseResponse,
    ProfitabilityRowResponse,
    ProfitabilityResponse,
    OptimizeResponse,
    IngestionStatusResponse,
)


__all__ = [
    # Enums
    'Granularity',
    'IngestionSource',
    'ProfitabilityMode',
    # Canonical records
    'RevenueRecord',
    'ExpenseRecord',
    'MetricRecord',
    'ProfitabilityRow',
    'ProfitabilityView',
    'Dataset',
    # Aggregation output
    'AggregationResult',
    # Dashboard API responses
    'OverviewResponse',
    'RevenueResponse',
    'ExpenseResponse',
    'ProfitabilityRowResponse',
    'ProfitabilityResponse',
    'OptimizeResponse',
    'IngestionStatusResponse',
]
