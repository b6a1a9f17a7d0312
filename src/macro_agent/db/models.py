"""Data models for research agent database records."""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable


class Regime(str, Enum):
    """Macro regime assigned by a research session."""
    EXPANSION = "EXPANSION"
    SLOWDOWN = "SLOWDOWN"
    CONTRACTION = "CONTRACTION"
    RECOVERY = "RECOVERY"


class ConfidenceLevel(str, Enum):
    """Self-reported confidence of a finding."""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class Direction(str, Enum):
    """Direction of an investment idea."""
    LONG = "LONG"
    SHORT = "SHORT"


class VerificationStatus(str, Enum):
    """Verification state of a finding.

    PENDING is the only entry state. The other three are verdicts issued
    by a later session; a newer verdict overwrites an older one.
    """
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PARTIAL = "PARTIAL"
    WRONG = "WRONG"

    @property
    def contribution(self) -> float:
        """Weight of this verdict in a prior-call accuracy average."""
        if self is VerificationStatus.PENDING:
            raise ValueError("PENDING is not a verdict")
        return _VERDICT_WEIGHTS[self]


_VERDICT_WEIGHTS = {
    VerificationStatus.CONFIRMED: 1.0,
    VerificationStatus.PARTIAL: 0.5,
    VerificationStatus.WRONG: 0.0,
}

VERDICTS = [s.value for s in _VERDICT_WEIGHTS]


class ExpansionStatus(str, Enum):
    """Status of a delegated capability-expansion task."""
    RUNNING = "RUNNING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"


class SessionStatus(str, Enum):
    """Status of a research session."""
    RUNNING = "running"
    COMPLETED = "completed"
    BUDGET_EXHAUSTED = "budget_exhausted"
    FAILED = "failed"


class MarketObjectType(str, Enum):
    """Snapshot object types readable by the agent, mapped to their tables."""
    MACRO_INDICATOR = "MacroIndicator"
    SECTOR_SNAPSHOT = "SectorSnapshot"
    CRYPTO_METRIC = "CryptoMetric"
    CATEGORY_SNAPSHOT = "CategorySnapshot"

    @property
    def table(self) -> str:
        return _MARKET_TABLES[self]


_MARKET_TABLES = {
    MarketObjectType.MACRO_INDICATOR: "macro_indicators",
    MarketObjectType.SECTOR_SNAPSHOT: "sector_snapshots",
    MarketObjectType.CRYPTO_METRIC: "crypto_metrics",
    MarketObjectType.CATEGORY_SNAPSHOT: "category_snapshots",
}


@dataclass
class Anomaly:
    """An indicator behaving unexpectedly."""
    indicator: str
    observation: str
    implication: str


@dataclass
class InvestmentIdea:
    """A trade expression of a finding."""
    ticker: str
    direction: Direction
    thesis: str
    catalyst: str
    risk: str


@dataclass
class QualityBreakdown:
    """Per-dimension quality scores from the judge, each in [1, 10]."""
    relevance: int
    depth: int
    temporal_accuracy: int
    data_consistency: int

    @property
    def overall(self) -> float:
        """Mean of the four dimensions rounded to one decimal."""
        dims = (self.relevance, self.depth, self.temporal_accuracy, self.data_consistency)
        return round(sum(dims) / len(dims), 1)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["overall"] = self.overall
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QualityBreakdown":
        return cls(
            relevance=int(data["relevance"]),
            depth=int(data["depth"]),
            temporal_accuracy=int(data["temporal_accuracy"]),
            data_consistency=int(data["data_consistency"]),
        )


@dataclass
class Verdict:
    """A later session's judgment on an earlier finding."""
    target_finding_id: str
    accuracy: VerificationStatus
    notes: str = ""


def prior_call_accuracy(verdicts: Iterable[VerificationStatus]) -> float | None:
    """(#CONFIRMED + 0.5 * #PARTIAL) / k over k verdicts, or None when k == 0."""
    weights = [v.contribution for v in verdicts]
    if not weights:
        return None
    return sum(weights) / len(weights)


@dataclass
class FindingRecord:
    """A persisted research conclusion produced by one session."""
    title: str
    regime: Regime
    confidence: ConfidenceLevel
    conviction_score: float
    summary: str
    key_findings: list[str] = field(default_factory=list)
    anomalies: list[Anomaly] = field(default_factory=list)
    investment_ideas: list[InvestmentIdea] = field(default_factory=list)
    finding_id: str | None = None
    created_at: datetime | None = None
    session_id: str | None = None

    # Verification (written by later sessions)
    verification_status: VerificationStatus = VerificationStatus.PENDING
    verified_at: datetime | None = None
    prior_call_accuracy: float | None = None

    # Quality judge output
    quality_score: float | None = None
    quality_breakdown: QualityBreakdown | None = None

    # Database ID (set after insert)
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Fully denormalised view for tool output."""
        return {
            "findingId": self.finding_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "title": self.title,
            "regime": self.regime.value,
            "confidence": self.confidence.value,
            "convictionScore": self.conviction_score,
            "summary": self.summary,
            "keyFindings": list(self.key_findings),
            "anomalies": [asdict(a) for a in self.anomalies],
            "investmentIdeas": [
                {**asdict(i), "direction": i.direction.value}
                for i in self.investment_ideas
            ],
            "verificationStatus": self.verification_status.value,
            "verifiedAt": self.verified_at.isoformat() if self.verified_at else None,
            "priorCallAccuracy": self.prior_call_accuracy,
            "qualityScore": self.quality_score,
            "qualityBreakdown": self.quality_breakdown.to_dict() if self.quality_breakdown else None,
        }

    def anomalies_json(self) -> str:
        return json.dumps([asdict(a) for a in self.anomalies])

    def investment_ideas_json(self) -> str:
        return json.dumps([
            {**asdict(i), "direction": i.direction.value}
            for i in self.investment_ideas
        ])


@dataclass
class ExpansionTaskRecord:
    """A request delegated to the engineering-automation collaborator."""
    description: str
    data_gap: str
    task_id: str | None = None
    requested_at: datetime | None = None
    triggered_by_finding_id: str | None = None
    status: ExpansionStatus = ExpansionStatus.RUNNING
    external_reference: str | None = None
    result: str | None = None
    completed_at: datetime | None = None
    id: int | None = None


@dataclass
class SessionRecord:
    """A top-level research session."""
    session_id: str
    goal: str
    status: SessionStatus = SessionStatus.RUNNING
    model_id: str | None = None
    config_json: str | None = None
    turns_used: int = 0
    finding_id: str | None = None
    termination_reason: str | None = None
    created_at: datetime | None = None
    terminated_at: datetime | None = None

    # Database ID (set after insert)
    id: int | None = None


@dataclass
class ToolCallRecord:
    """Record of a tool invocation."""
    session_id: str
    turn_number: int
    invocation_id: str
    tool_name: str
    arguments_json: str
    output: str | None = None
    is_error: bool = False
    started_at: datetime | None = None
    duration_ms: int | None = None
    id: int | None = None
