"""Tools for reading the findings log (the agent's memory)."""

import json
import logging
from typing import Any

from src.macro_agent.agent.collaborators import Collaborators
from src.macro_agent.db.models import Regime, VerificationStatus
from src.macro_agent.tools.base import (
    BaseTool,
    ToolContext,
    ToolParameter,
    ToolResult,
    clamp_limit,
)

logger = logging.getLogger(__name__)

# Sentinels: informative non-error answers, each distinct from the others
NO_PRIOR_FINDINGS = "No prior findings. This is the first agent run, so establish a baseline."
NO_PENDING_VERIFICATIONS = "No pending verifications. All prior calls have been assessed."
STORE_UNAVAILABLE = "Findings store unavailable, so no prior findings can be read. Treat this as a first run."
NO_SIMILAR_REGIMES = (
    "No prior findings with regime={regime}{keyword_clause}. "
    "You're establishing the first data point for this configuration."
)

REGIMES = [r.value for r in Regime]


class ReadPriorFindingsTool(BaseTool):
    """Tool for reading the most recent findings."""

    def __init__(self, collaborators: Collaborators):
        self._collaborators = collaborators

    @property
    def name(self) -> str:
        return "read_prior_findings"

    @property
    def description(self) -> str:
        return """Read conclusions from previous agent runs. ALWAYS call this first before reading live data.

Returns the last N findings, newest first. Each includes the regime call, confidence,
conviction score, verification status (was the prior call right?), key findings,
anomalies, investment ideas and quality score."""

    @property
    def parameters(self) -> list[ToolParameter]:
        return [
            ToolParameter(
                name="limit",
                type="integer",
                description="Number of recent findings (default: 5, max: 20)",
                required=False,
                default=5,
            ),
        ]

    def execute(self, context: ToolContext, limit: int = 5, **kwargs) -> ToolResult:
        repo = self._collaborators.repo
        if repo is None or not repo.is_connected:
            return ToolResult.ok(STORE_UNAVAILABLE, sentinel="store_unavailable")

        findings = repo.list_findings(clamp_limit(limit, 5, 20))
        if not findings:
            return ToolResult.ok(NO_PRIOR_FINDINGS, sentinel="empty")

        return ToolResult.ok(
            json.dumps([f.to_dict() for f in findings], indent=2),
            count=len(findings),
        )


class VerifyPriorCallsTool(BaseTool):
    """Tool for listing findings whose calls have not been judged yet."""

    def __init__(self, collaborators: Collaborators):
        self._collaborators = collaborators

    @property
    def name(self) -> str:
        return "verify_prior_calls"

    @property
    def description(self) -> str:
        return """Check prior regime calls against current market reality to build a track record.

Returns unverified findings (status PENDING) with their predictions. After reading live
data, judge each as CONFIRMED, PARTIAL, or WRONG and include your verdicts in
commit_finding under 'verifications'."""

    @property
    def parameters(self) -> list[ToolParameter]:
        return [
            ToolParameter(
                name="limit",
                type="integer",
                description="Number of unverified findings to check (default: 3, max: 10)",
                required=False,
                default=3,
            ),
        ]

    def execute(self, context: ToolContext, limit: int = 3, **kwargs) -> ToolResult:
        repo = self._collaborators.repo
        if repo is None or not repo.is_connected:
            return ToolResult.ok(STORE_UNAVAILABLE, sentinel="store_unavailable")

        pending = repo.list_findings_by_status(
            VerificationStatus.PENDING,
            clamp_limit(limit, 3, 10),
        )
        if not pending:
            return ToolResult.ok(NO_PENDING_VERIFICATIONS, sentinel="empty")

        calls = []
        for f in pending:
            data = f.to_dict()
            calls.append({key: data[key] for key in (
                "findingId", "createdAt", "title", "regime", "confidence", "convictionScore",
                "summary", "keyFindings", "anomalies", "investmentIdeas",
            )})

        return ToolResult.ok(
            json.dumps({
                "message": (
                    "Compare these prior calls to current live data and include your "
                    "verdicts in commit_finding under 'verifications'."
                ),
                "pendingVerifications": calls,
            }, indent=2),
            count=len(calls),
        )


class QuerySimilarRegimesTool(BaseTool):
    """Tool for pattern memory: prior findings in a given regime."""

    def __init__(self, collaborators: Collaborators):
        self._collaborators = collaborators

    @property
    def name(self) -> str:
        return "query_similar_regimes"

    @property
    def description(self) -> str:
        return """Search historical findings for similar macro configurations.

Use this to ask: 'Have I seen this before? What happened next?' Matches prior runs with
the same regime, optionally filtered by a keyword found in their key findings, anomalies
or summary (case-insensitive). Returns matches newest first."""

    @property
    def parameters(self) -> list[ToolParameter]:
        return [
            ToolParameter(
                name="regime",
                type="string",
                description="Regime to match",
                required=True,
                enum=REGIMES,
            ),
            ToolParameter(
                name="keyword",
                type="string",
                description="Optional text to search for (e.g. 'HY spreads', 'yield curve', 'sentiment')",
                required=False,
            ),
            ToolParameter(
                name="limit",
                type="integer",
                description="Max results (default: 5, max: 10)",
                required=False,
                default=5,
            ),
        ]

    def execute(
        self,
        context: ToolContext,
        regime: str,
        keyword: str | None = None,
        limit: int = 5,
        **kwargs,
    ) -> ToolResult:
        repo = self._collaborators.repo
        if repo is None or not repo.is_connected:
            return ToolResult.ok(STORE_UNAVAILABLE, sentinel="store_unavailable")

        keyword = (keyword or "").strip() or None
        matches = repo.find_by_regime(Regime(regime), keyword, clamp_limit(limit, 5, 10))

        keyword_clause = f' matching "{keyword}"' if keyword else ""
        if not matches:
            return ToolResult.ok(
                NO_SIMILAR_REGIMES.format(regime=regime, keyword_clause=keyword_clause),
                sentinel="no_matches",
            )

        payload: list[dict[str, Any]] = []
        for f in matches:
            data = f.to_dict()
            payload.append({key: data[key] for key in (
                "findingId", "createdAt", "title", "regime", "confidence", "convictionScore",
                "verificationStatus", "summary", "keyFindings", "investmentIdeas",
            )})

        return ToolResult.ok(
            json.dumps({
                "message": (
                    f"Found {len(matches)} prior run(s) matching regime={regime}"
                    f"{keyword_clause}. Use these to identify recurring patterns."
                ),
                "matches": payload,
            }, indent=2),
            count=len(matches),
        )
