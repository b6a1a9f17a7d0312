"""Best-effort quality judge for committed findings."""

import json
import logging
import math
import re
from typing import Any

from src.macro_agent.db.models import FindingRecord, QualityBreakdown
from src.macro_agent.llm.prompts import JUDGE_SYSTEM_PROMPT, format_finding_for_review

logger = logging.getLogger(__name__)

DIMENSIONS = ("relevance", "depth", "temporal_accuracy", "data_consistency")

_FENCE_RE = re.compile(r"```(?:json)?\s*|\s*```")


def _clamp(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Dimension {name} is not numeric: {value!r}")
    number = float(value)
    if math.isnan(number):
        raise ValueError(f"Dimension {name} is NaN")
    return max(1, min(10, round(number)))


def parse_scores(text: str) -> QualityBreakdown:
    """Parse the judge's JSON reply into a breakdown.

    Markdown fences are stripped and each dimension is rounded and
    clamped to [1, 10].

    Raises:
        ValueError: If the reply is not a JSON object with all four
            numeric dimensions
    """
    cleaned = _FENCE_RE.sub("", text or "").strip()
    parsed = json.loads(cleaned)
    if not isinstance(parsed, dict):
        raise ValueError("Judge reply is not a JSON object")

    missing = [d for d in DIMENSIONS if d not in parsed]
    if missing:
        raise ValueError(f"Judge reply missing dimensions: {', '.join(missing)}")

    return QualityBreakdown(**{d: _clamp(parsed[d], d) for d in DIMENSIONS})


class QualityJudge:
    """Scores findings with an independent completion call.

    score() never raises: a missing client, missing credentials, a timeout
    or a malformed reply all yield None.
    """

    def __init__(self, client: Any = None):
        """Initialize the judge.

        Args:
            client: Object with generate_text(system_instruction, prompt);
                None disables scoring
        """
        self._client = client

    def score(self, finding: FindingRecord) -> QualityBreakdown | None:
        if self._client is None:
            return None

        try:
            reply = self._client.generate_text(
                JUDGE_SYSTEM_PROMPT,
                format_finding_for_review(finding),
            )
            breakdown = parse_scores(reply)
        except Exception as e:
            logger.warning(f"Quality scoring skipped: {e}")
            return None

        logger.info(
            f"Quality {breakdown.overall}/10 (relevance={breakdown.relevance}, "
            f"depth={breakdown.depth}, temporal={breakdown.temporal_accuracy}, "
            f"consistency={breakdown.data_consistency})"
        )
        return breakdown
