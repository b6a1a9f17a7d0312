"""Tools for reading live market state and historical series."""

import json
import logging

from src.macro_agent.agent.collaborators import Collaborators
from src.macro_agent.db.models import MarketObjectType
from src.macro_agent.errors import ResearchAgentError
from src.macro_agent.integrations.fred import MAX_OBSERVATIONS
from src.macro_agent.tools.base import (
    BaseTool,
    ToolContext,
    ToolParameter,
    ToolResult,
    clamp_limit,
)

logger = logging.getLogger(__name__)

OBJECT_TYPES = [t.value for t in MarketObjectType]


class ReadMarketObjectsTool(BaseTool):
    """Tool for reading the latest market snapshot rows."""

    def __init__(self, collaborators: Collaborators):
        self._collaborators = collaborators

    @property
    def name(self) -> str:
        return "read_market_objects"

    @property
    def description(self) -> str:
        return f"""Read the latest ingested market snapshots of one object type.

Object types: {', '.join(OBJECT_TYPES)}.
Rows carry current values, 52-week percentiles, period deltas and derived signals."""

    @property
    def parameters(self) -> list[ToolParameter]:
        # No enum: unknown types get a descriptive answer rather than a validation error
        return [
            ToolParameter(
                name="object_type",
                type="string",
                description=f"Object type to read: one of {', '.join(OBJECT_TYPES)}",
                required=True,
            ),
        ]

    def execute(self, context: ToolContext, object_type: str, **kwargs) -> ToolResult:
        try:
            market_type = MarketObjectType(object_type)
        except ValueError:
            return ToolResult.fail(f"Unknown objectType: {object_type}")

        repo = self._collaborators.repo
        if repo is None or not repo.is_connected:
            return ToolResult.fail(f"No database connected, cannot read {object_type}.")

        rows = repo.read_market_objects(market_type)
        if not rows:
            return ToolResult.ok(f"No {object_type} objects have been ingested yet.", count=0)

        return ToolResult.ok(json.dumps(rows, indent=2, default=str), count=len(rows))


class FetchTimeSeriesTool(BaseTool):
    """Tool for fetching historical observations of one series."""

    def __init__(self, collaborators: Collaborators):
        self._collaborators = collaborators

    @property
    def name(self) -> str:
        return "fetch_time_series"

    @property
    def description(self) -> str:
        return """Fetch historical observations for a FRED series to validate an anomaly over time.

Useful series: T10Y2Y (yield curve), BAMLH0A0HYM2 (HY spread), UMCSENT (consumer sentiment),
CPIAUCSL (CPI), FEDFUNDS, UNRATE, INDPRO, HOUST, MORTGAGE30US.
Returns observations newest first; missing data points are omitted."""

    @property
    def parameters(self) -> list[ToolParameter]:
        return [
            ToolParameter(
                name="series_id",
                type="string",
                description="FRED series ID (e.g. T10Y2Y)",
                required=True,
            ),
            ToolParameter(
                name="limit",
                type="integer",
                description=f"Number of recent observations (default: 24, max: {MAX_OBSERVATIONS})",
                required=False,
                default=24,
            ),
        ]

    def execute(
        self,
        context: ToolContext,
        series_id: str,
        limit: int = 24,
        **kwargs,
    ) -> ToolResult:
        client = self._collaborators.time_series
        if client is None:
            return ToolResult.fail(f"No time-series source configured, cannot fetch {series_id}.")

        try:
            observations = client.fetch(series_id, clamp_limit(limit, 24, MAX_OBSERVATIONS))
        except ResearchAgentError as e:
            logger.warning(str(e))
            return ToolResult.fail(str(e))

        return ToolResult.ok(
            json.dumps({"seriesId": series_id, "observations": observations}, indent=2),
            count=len(observations),
        )
