"""Agent components for the macro research agent.

Provides the research loop and its supporting components:
- ResearchAgent: The bounded completion/tool loop
- Collaborators: Store and services the tools work against
- QualityJudge: Best-effort scoring of committed findings
"""

from src.macro_agent.agent.agent import (
    AgentConfig,
    ResearchAgent,
    SessionOutcome,
    SessionResult,
    run_session,
)
from src.macro_agent.agent.collaborators import Collaborators
from src.macro_agent.agent.judge import QualityJudge

__all__ = [
    "AgentConfig",
    "ResearchAgent",
    "SessionOutcome",
    "SessionResult",
    "run_session",
    "Collaborators",
    "QualityJudge",
]
