"""The collaborators a research session works against."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from src.macro_agent.agent.judge import QualityJudge
from src.macro_agent.db.repo import ResearchRepository
from src.macro_agent.integrations.expansion import (
    EngineeringClient,
    ExpansionDispatcher,
    OpenHandsConfig,
)
from src.macro_agent.integrations.fred import FredConfig, TimeSeriesClient

logger = logging.getLogger(__name__)


@dataclass
class Collaborators:
    """Everything a tool may read or mutate.

    Any collaborator may be None; the tools that need it then answer
    with a descriptive text instead of failing.

    Attributes:
        repo: Persistent store (findings, expansion tasks, snapshots)
        time_series: Historical series collaborator
        expansion: Engineering-automation dispatcher
        judge: Quality judge run on every commit
        reports_dir: If set, committed findings are also written as markdown
        clock: Source of timestamps
    """
    repo: ResearchRepository | None = None
    time_series: TimeSeriesClient | None = None
    expansion: ExpansionDispatcher | None = None
    judge: QualityJudge | None = None
    reports_dir: Path | None = None
    clock: Callable[[], datetime] = field(default=datetime.now)

    @classmethod
    def from_environment(
        cls,
        repo: ResearchRepository,
        judge_client: Any = None,
        reports_dir: str | Path | None = None,
    ) -> "Collaborators":
        """Build collaborators from environment configuration.

        Args:
            repo: Connected repository
            judge_client: Completion client used by the quality judge
            reports_dir: Optional markdown output directory
        """
        time_series = TimeSeriesClient(FredConfig())
        engineering = EngineeringClient(OpenHandsConfig())
        if not time_series.is_configured:
            logger.info("FRED_API_KEY not set; fetch_time_series will be unavailable")
        if not engineering.is_configured:
            logger.info("OPENHANDS_API_KEY not set; expand_capabilities will be unavailable")

        return cls(
            repo=repo,
            time_series=time_series,
            expansion=ExpansionDispatcher(engineering, repo),
            judge=QualityJudge(judge_client),
            reports_dir=Path(reports_dir) if reports_dir else None,
        )
