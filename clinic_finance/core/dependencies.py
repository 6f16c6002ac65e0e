"""
FastAPI dependency injection module for the Clinic Finance backend.

This module provides reusable FastAPI dependencies for configuration access,
the shared dashboard state and the query executor, so endpoint handlers stay
decoupled from how those objects are created.

Key Dependencies Provided:
- get_settings_dependency: Returns the cached Settings singleton
- get_dashboard_state: Returns the DashboardState stored on app.state
- get_query_executor: Returns the executor built at startup (or None)
- get_snapshot_reader: Returns the CSV snapshot reader used by the fallback
- SettingsDep, DashboardStateDep, QueryExecutorDep, SnapshotReaderDep: aliases

Usage Examples:
    @router.get("/overview")
    async def get_overview(
        state: DashboardStateDep,
        settings: SettingsDep,
    ) -> OverviewResponse:
        ...

Testing:
    app.dependency_overrides[get_settings_dependency] = lambda: test_settings
"""

from typing import Annotated, Optional

from fastapi import Depends, Request

from clinic_finance.core.config import Settings, get_settings
from clinic_finance.core.query_executor import QueryExecutor
from clinic_finance.core.snapshot_reader import SnapshotReader, read_snapshot
from clinic_finance.services.dashboard_state import DashboardState


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    This is a thin wrapper around get_settings() so tests can swap settings
    through FastAPI's dependency override mechanism.
    """
    return get_settings()


# =============================================================================
# Application State Dependencies
# =============================================================================

def get_dashboard_state(request: Request) -> DashboardState:
    """
    Return the dashboard state created by the application lifespan.

    A fresh empty state is attached when none exists yet (e.g. an app built
    without running its lifespan).
    """
    state = getattr(request.app.state, 'dashboard', None)
    if state is None:
        state = DashboardState()
        request.app.state.dashboard = state
    return state


def get_query_executor(request: Request) -> Optional[QueryExecutor]:
    """Return the query executor built at startup, or None when disabled."""
    return getattr(request.app.state, 'query_executor', None)


def get_snapshot_reader(request: Request) -> SnapshotReader:
    """Return the snapshot reader on app.state, defaulting to read_snapshot."""
    return getattr(request.app.state, 'snapshot_reader', None) or read_snapshot


# =============================================================================
# Type Aliases for Dependency Injection
# =============================================================================

# Usage: async def endpoint(settings: SettingsDep)
SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]

# Usage: async def endpoint(state: DashboardStateDep)
DashboardStateDep = Annotated[DashboardState, Depends(get_dashboard_state)]

# Usage: async def endpoint(executor: QueryExecutorDep)
QueryExecutorDep = Annotated[Optional[QueryExecutor], Depends(get_query_executor)]

# Usage: async def endpoint(reader: SnapshotReaderDep)
SnapshotReaderDep = Annotated[SnapshotReader, Depends(get_snapshot_reader)]


__all__ = [
    'get_settings_dependency',
    'get_dashboard_state',
    'get_query_executor',
    'get_snapshot_reader',
    'SettingsDep',
    'DashboardStateDep',
    'QueryExecutorDep',
    'SnapshotReaderDep',
]
