"""
FastAPI application entry point for the Clinic Finance API.

This module configures logging and CORS, registers the dashboard router and
loads the canonical dataset once at startup. The dataset lives in a
DashboardState on app.state; POST /dashboard/refresh reloads it on demand.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from clinic_finance import __version__
from clinic_finance.api import api_router
from clinic_finance.core.config import get_settings
from clinic_finance.core.query_executor import build_query_executor
from clinic_finance.core.snapshot_reader import read_snapshot
from clinic_finance.services.dashboard_state import DashboardState
from clinic_finance.services.ingestion import (
    TotalIngestionFailure,
    refresh_dashboard_state,
)

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for FastAPI application startup and shutdown events.

    On startup:
        - Build the query executor (None without BIGQUERY_PROJECT)
        - Load the canonical dataset into a fresh DashboardState
        - Keep serving the empty dataset when every source fails
    """
    # Startup
    logger.info("Clinic Finance API starting")
    state = DashboardState()
    app.state.dashboard = state
    app.state.query_executor = build_query_executor(settings)
    app.state.snapshot_reader = read_snapshot

    try:
        dataset = await refresh_dashboard_state(
            state, app.state.query_executor, settings, app.state.snapshot_reader
        )
        logger.info(f"Dashboard ready with {dataset.source.value} data")
    except TotalIngestionFailure as e:
        logger.error(f"Starting with an empty dataset: {e}")

    yield

    # Shutdown
    logger.info("Clinic Finance API shutting down")


# Create FastAPI application
app = FastAPI(
    title="Clinic Finance API",
    version=__version__,
    description=(
        "FastAPI backend for the clinic financial dashboard. "
        "Provides cash, revenue, expense, profitability and "
        "capacity optimization views over claims and general-ledger data."
    ),
    lifespan=lifespan,
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register API routers
app.include_router(api_router)


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancer probes.

    Returns:
        Dict with status 'healthy'
    """
    return {"status": "healthy"}


@app.get("/")
async def root():
    """
    Root endpoint providing API information.

    Returns:
        Dict with API name and version
    """
    return {
        "name": "Clinic Finance API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "clinic_finance.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
