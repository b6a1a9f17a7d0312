"""External collaborators: time-series data and engineering automation."""

from src.macro_agent.integrations.expansion import (
    EngineeringClient,
    ExpansionDispatcher,
    OpenHandsConfig,
)
from src.macro_agent.integrations.fred import FredConfig, TimeSeriesClient

__all__ = [
    "EngineeringClient",
    "ExpansionDispatcher",
    "OpenHandsConfig",
    "FredConfig",
    "TimeSeriesClient",
]
