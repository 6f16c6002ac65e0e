"""
Dashboard State Service.

Holds the state shared by the dashboard endpoints: the current canonical
dataset and the profitability mode flag. One instance lives on the FastAPI
application (app.state.dashboard) and is created by the lifespan handler.

The dataset is only ever replaced as a whole, so a request never observes a
half-refreshed dataset. Refreshes are serialized by refresh_lock.
"""

import asyncio
from dataclasses import dataclass, field

from clinic_finance.models.enums import IngestionSource, ProfitabilityMode
from clinic_finance.models.schemas import Dataset
from clinic_finance.services.metrics import toggle_profitability_mode


@dataclass
class DashboardState:
    """Current dataset plus presentation flags."""

    dataset: Dataset = field(default_factory=Dataset.empty)
    profitability_mode: ProfitabilityMode = ProfitabilityMode.PROCEDURE
    refresh_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def source(self) -> IngestionSource:
        return self.dataset.source

    def replace_dataset(self, dataset: Dataset) -> Dataset:
        """Swap in a new dataset, returning the previous one."""
        previous = self.dataset
        self.dataset = dataset
        return previous

    def toggle_profitability_mode(self) -> ProfitabilityMode:
        """Flip the profitability mode and return the new value."""
        self.profitability_mode = toggle_profitability_mode(self.profitability_mode)
        return self.profitability_mode


__all__ = ['DashboardState']
