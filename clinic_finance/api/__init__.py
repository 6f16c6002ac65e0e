"""
Clinic Finance API package initialization.

This package contains FastAPI router modules for the Clinic Finance backend:
- dashboard: Overview, revenue, expense, profitability and optimization panels,
  plus the ingestion refresh endpoint
"""

from fastapi import APIRouter

# Import router modules
from clinic_finance.api.dashboard import router as dashboard_router

# Create main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(dashboard_router, prefix="/dashboard", tags=["dashboard"])

# Export all routers for selective imports
__all__ = [
    "api_router",
    "dashboard_router",
]
