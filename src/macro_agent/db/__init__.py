"""Database layer for the research agent.

Provides persistence for findings, verification state, expansion tasks,
session audit records and the read-only market snapshot tables.
"""

from src.macro_agent.db.models import (
    Anomaly,
    ConfidenceLevel,
    Direction,
    ExpansionStatus,
    ExpansionTaskRecord,
    FindingRecord,
    InvestmentIdea,
    MarketObjectType,
    QualityBreakdown,
    Regime,
    SessionRecord,
    SessionStatus,
    ToolCallRecord,
    Verdict,
    VerificationStatus,
    prior_call_accuracy,
)
from src.macro_agent.db.repo import ResearchRepository

__all__ = [
    "Anomaly",
    "ConfidenceLevel",
    "Direction",
    "ExpansionStatus",
    "ExpansionTaskRecord",
    "FindingRecord",
    "InvestmentIdea",
    "MarketObjectType",
    "QualityBreakdown",
    "Regime",
    "SessionRecord",
    "SessionStatus",
    "ToolCallRecord",
    "Verdict",
    "VerificationStatus",
    "prior_call_accuracy",
    "ResearchRepository",
]
