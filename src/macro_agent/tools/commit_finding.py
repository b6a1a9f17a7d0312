"""The terminal tool: persist a finding and adjudicate prior calls."""

import logging
from pathlib import Path
from typing import Any

from src.macro_agent.agent.collaborators import Collaborators
from src.macro_agent.db.models import (
    VERDICTS,
    Anomaly,
    ConfidenceLevel,
    Direction,
    FindingRecord,
    InvestmentIdea,
    QualityBreakdown,
    Regime,
    Verdict,
    VerificationStatus,
    prior_call_accuracy,
)
from src.macro_agent.tools.base import BaseTool, ToolContext, ToolParameter, ToolResult

logger = logging.getLogger(__name__)

ANOMALY_SCHEMA = {
    "type": "object",
    "properties": {
        "indicator": {"type": "string"},
        "observation": {"type": "string"},
        "implication": {"type": "string"},
    },
    "required": ["indicator", "observation", "implication"],
}

IDEA_SCHEMA = {
    "type": "object",
    "properties": {
        "ticker": {"type": "string"},
        "direction": {"type": "string", "enum": [d.value for d in Direction]},
        "thesis": {"type": "string"},
        "catalyst": {"type": "string"},
        "risk": {"type": "string"},
    },
    "required": ["ticker", "direction", "thesis", "catalyst", "risk"],
}

VERDICT_SCHEMA = {
    "type": "object",
    "properties": {
        "target_finding_id": {"type": "string", "description": "findingId from verify_prior_calls"},
        "accuracy": {"type": "string", "enum": VERDICTS},
        "notes": {"type": "string", "description": "What happened vs. what was predicted"},
    },
    "required": ["target_finding_id", "accuracy"],
}


def _require_str(item: dict[str, Any], key: str, where: str) -> str:
    value = item.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{where}: '{key}' must be a non-empty string")
    return value


def _parse_anomalies(items: list[Any]) -> list[Anomaly]:
    anomalies = []
    for n, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValueError(f"anomalies[{n}] must be an object")
        anomalies.append(Anomaly(
            indicator=_require_str(item, "indicator", f"anomalies[{n}]"),
            observation=_require_str(item, "observation", f"anomalies[{n}]"),
            implication=_require_str(item, "implication", f"anomalies[{n}]"),
        ))
    return anomalies


def _parse_ideas(items: list[Any]) -> list[InvestmentIdea]:
    ideas = []
    for n, item in enumerate(items):
        where = f"investment_ideas[{n}]"
        if not isinstance(item, dict):
            raise ValueError(f"{where} must be an object")
        try:
            direction = Direction(item.get("direction"))
        except ValueError:
            raise ValueError(f"{where}: 'direction' must be LONG or SHORT") from None
        ideas.append(InvestmentIdea(
            ticker=_require_str(item, "ticker", where),
            direction=direction,
            thesis=_require_str(item, "thesis", where),
            catalyst=_require_str(item, "catalyst", where),
            risk=_require_str(item, "risk", where),
        ))
    return ideas


def _parse_verdicts(items: list[Any]) -> list[Verdict]:
    verdicts = []
    for n, item in enumerate(items):
        where = f"verifications[{n}]"
        if not isinstance(item, dict):
            raise ValueError(f"{where} must be an object")
        accuracy = item.get("accuracy")
        if accuracy not in VERDICTS:
            raise ValueError(f"{where}: 'accuracy' must be one of {', '.join(VERDICTS)}")
        verdicts.append(Verdict(
            target_finding_id=_require_str(item, "target_finding_id", where),
            accuracy=VerificationStatus(accuracy),
            notes=str(item.get("notes") or ""),
        ))
    return verdicts


def render_markdown(finding: FindingRecord, verdicts: list[Verdict]) -> str:
    """Render a committed finding as a markdown research note."""
    lines = [
        f"# {finding.title}",
        "",
        f"**Generated:** {finding.created_at.isoformat() if finding.created_at else ''}  ",
        f"**Regime:** `{finding.regime.value}`  ",
        f"**Confidence:** `{finding.confidence.value}`  ",
        f"**Conviction:** {finding.conviction_score}/10",
    ]
    if finding.quality_breakdown is not None:
        lines.append(f"**Quality:** {finding.quality_breakdown.overall}/10")
    lines.extend(["", "## Summary", finding.summary, "", "## Key Findings"])
    lines.extend(f"- {f}" for f in finding.key_findings)
    lines.extend(["", "## Anomalies"])
    for a in finding.anomalies:
        lines.extend([
            f"### {a.indicator}",
            f"**Observation:** {a.observation}",
            "",
            f"**Implication:** {a.implication}",
            "",
        ])
    lines.extend(["## Investment Ideas"])
    for i in finding.investment_ideas:
        lines.extend([
            f"### {i.direction.value} {i.ticker}",
            f"**Thesis:** {i.thesis}",
            "",
            f"**Catalyst:** {i.catalyst}",
            "",
            f"**Key Risk:** {i.risk}",
            "",
        ])
    if verdicts:
        lines.append("## Prior Call Verifications")
        lines.extend(
            f"- **{v.accuracy.value}** ({v.target_finding_id[:8]}): {v.notes}"
            for v in verdicts
        )
    return "\n".join(lines).rstrip() + "\n"


class CommitFindingTool(BaseTool):
    """Persists the session's conclusion as a new PENDING finding.

    In order: the payload is validated, the quality judge consulted (best
    effort), the finding inserted together with its verdicts on earlier
    findings in one transaction, and, if a reports directory is configured,
    a markdown copy written. The new finding's id is returned in the result
    metadata.
    """

    def __init__(self, collaborators: Collaborators):
        self._collaborators = collaborators

    @property
    def name(self) -> str:
        return "commit_finding"

    @property
    def description(self) -> str:
        return """Commit your research finding to the persistent log. Call this ONCE at the end of your analysis.

The finding becomes part of the world model: future runs read it and judge whether your call held up.
Include 'verifications' with your verdict on each pending call returned by verify_prior_calls."""

    @property
    def parameters(self) -> list[ToolParameter]:
        return [
            ToolParameter(
                name="title",
                type="string",
                description="Headline for the finding",
            ),
            ToolParameter(
                name="regime",
                type="string",
                description="Current macro regime",
                enum=[r.value for r in Regime],
            ),
            ToolParameter(
                name="confidence",
                type="string",
                description="Confidence in the regime call",
                enum=[c.value for c in ConfidenceLevel],
            ),
            ToolParameter(
                name="conviction_score",
                type="number",
                description="Self-rated conviction from 1 to 10",
            ),
            ToolParameter(
                name="summary",
                type="string",
                description="2-3 paragraph executive summary",
            ),
            ToolParameter(
                name="key_findings",
                type="array",
                description="Key findings, most important first",
                items={"type": "string"},
            ),
            ToolParameter(
                name="anomalies",
                type="array",
                description="Indicators behaving unexpectedly",
                required=False,
                items=ANOMALY_SCHEMA,
            ),
            ToolParameter(
                name="investment_ideas",
                type="array",
                description="Trade expressions of the finding",
                required=False,
                items=IDEA_SCHEMA,
            ),
            ToolParameter(
                name="verifications",
                type="array",
                description="Verdicts on prior calls from verify_prior_calls",
                required=False,
                items=VERDICT_SCHEMA,
            ),
        ]

    def execute(
        self,
        context: ToolContext,
        title: str,
        regime: str,
        confidence: str,
        conviction_score: float,
        summary: str,
        key_findings: list[str],
        anomalies: list[dict] | None = None,
        investment_ideas: list[dict] | None = None,
        verifications: list[dict] | None = None,
        **kwargs,
    ) -> ToolResult:
        repo = self._collaborators.repo
        if repo is None or not repo.is_connected:
            return ToolResult.fail("No database connected, finding not persisted.")

        if not 1 <= conviction_score <= 10:
            return ToolResult.fail(
                f"Invalid finding: conviction_score must be between 1 and 10, got {conviction_score}"
            )
        try:
            finding = FindingRecord(
                title=title,
                regime=Regime(regime),
                confidence=ConfidenceLevel(confidence),
                conviction_score=float(conviction_score),
                summary=summary,
                key_findings=[str(f) for f in key_findings],
                anomalies=_parse_anomalies(anomalies or []),
                investment_ideas=_parse_ideas(investment_ideas or []),
                session_id=context.session_id,
                created_at=self._collaborators.clock(),
            )
            verdicts = _parse_verdicts(verifications or [])
        except ValueError as e:
            return ToolResult.fail(f"Invalid finding: {e}")

        quality = self._score(finding)
        if quality is not None:
            finding.quality_score = quality.overall
            finding.quality_breakdown = quality
        if verdicts:
            finding.prior_call_accuracy = prior_call_accuracy(v.accuracy for v in verdicts)

        updated = repo.commit_finding(finding, verdicts, verified_at=finding.created_at)
        finding_id = finding.finding_id
        unknown = [v.target_finding_id for v in verdicts if v.target_finding_id not in updated]
        logger.info(f"Committed finding {finding_id}: {title} ({regime}, conviction={conviction_score})")

        report_path = self._write_report(finding, verdicts)

        message = f"Finding {finding_id} persisted with conviction={finding.conviction_score:g}/10"
        if quality is not None:
            message += (
                f" | quality={quality.overall}/10 (relevance={quality.relevance}, "
                f"depth={quality.depth}, temporal={quality.temporal_accuracy}, "
                f"consistency={quality.data_consistency})"
            )
        if verdicts:
            message += (
                f" | verified {len(verdicts) - len(unknown)} prior call(s), "
                f"accuracy={finding.prior_call_accuracy:.3f}"
            )
        if unknown:
            message += f" | skipped unknown finding ids: {', '.join(unknown)}"
        if report_path is not None:
            message += f" | report saved to {report_path}"

        return ToolResult.ok(message, finding_id=finding_id)

    def _score(self, finding: FindingRecord) -> QualityBreakdown | None:
        judge = self._collaborators.judge
        if judge is None:
            return None
        try:
            return judge.score(finding)
        except Exception as e:
            logger.warning(f"Quality scoring skipped: {e}")
            return None

    def _write_report(self, finding: FindingRecord, verdicts: list[Verdict]) -> Path | None:
        reports_dir = self._collaborators.reports_dir
        if reports_dir is None:
            return None

        stamp = finding.created_at.strftime("%Y-%m-%dT%H-%M-%S")
        path = Path(reports_dir) / f"agent_note_{stamp}_{finding.finding_id[:8]}.md"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(render_markdown(finding, verdicts))
        except OSError as e:
            logger.warning(f"Could not write report {path}: {e}")
            return None
        return path
