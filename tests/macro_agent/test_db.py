"""Tests for the research agent database layer."""

import json
import pytest
import sqlite3
import tempfile
from datetime import datetime, timedelta
from pathlib import Path

from src.macro_agent.db import (
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
    ResearchRepository,
    SessionRecord,
    SessionStatus,
    ToolCallRecord,
    Verdict,
    VerificationStatus,
    prior_call_accuracy,
)


@pytest.fixture
def temp_db():
    """Create a temporary database path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    yield db_path
    Path(db_path).unlink(missing_ok=True)


@pytest.fixture
def repo(temp_db):
    """Create a connected repository."""
    repo = ResearchRepository(temp_db)
    repo.connect()
    yield repo
    repo.close()


def make_finding(
    title: str = "Late-cycle slowdown",
    regime: Regime = Regime.SLOWDOWN,
    created_at: datetime | None = None,
    **kwargs,
) -> FindingRecord:
    return FindingRecord(
        title=title,
        regime=regime,
        confidence=kwargs.pop("confidence", ConfidenceLevel.MEDIUM),
        conviction_score=kwargs.pop("conviction_score", 6.0),
        summary=kwargs.pop("summary", "Growth is decelerating while credit stays calm."),
        key_findings=kwargs.pop("key_findings", ["T10Y2Y at 0.14%", "XLF -7.65% YTD"]),
        anomalies=kwargs.pop("anomalies", [
            Anomaly(
                indicator="BAMLH0A0HYM2",
                observation="HY spreads tight at 3.1%",
                implication="Credit is not pricing the slowdown",
            ),
        ]),
        investment_ideas=kwargs.pop("investment_ideas", [
            InvestmentIdea(
                ticker="XLU",
                direction=Direction.LONG,
                thesis="Defensives outperform late cycle",
                catalyst="Next CPI print",
                risk="Rates back up",
            ),
        ]),
        created_at=created_at,
        **kwargs,
    )


class TestVerificationMath:
    """Tests for the pure verification helpers."""

    def test_contributions(self):
        """Test each verdict's weight."""
        assert VerificationStatus.CONFIRMED.contribution == 1.0
        assert VerificationStatus.PARTIAL.contribution == 0.5
        assert VerificationStatus.WRONG.contribution == 0.0

    def test_pending_is_not_a_verdict(self):
        """Test that PENDING has no contribution."""
        with pytest.raises(ValueError):
            VerificationStatus.PENDING.contribution

    def test_accuracy_mixed(self):
        """Test that {CONFIRMED, PARTIAL, WRONG} averages to 0.5."""
        accuracy = prior_call_accuracy([
            VerificationStatus.CONFIRMED,
            VerificationStatus.PARTIAL,
            VerificationStatus.WRONG,
        ])
        assert accuracy == pytest.approx(0.5)

    def test_accuracy_two_of_three(self):
        """Test that {CONFIRMED, CONFIRMED, WRONG} averages to 2/3."""
        accuracy = prior_call_accuracy([
            VerificationStatus.CONFIRMED,
            VerificationStatus.CONFIRMED,
            VerificationStatus.WRONG,
        ])
        assert accuracy == pytest.approx(0.667, abs=1e-3)

    def test_accuracy_no_verdicts(self):
        """Test that no verdicts means no accuracy."""
        assert prior_call_accuracy([]) is None


class TestQualityBreakdown:
    """Tests for QualityBreakdown."""

    def test_overall_is_rounded_mean(self):
        """Test overall = round(mean, 1)."""
        breakdown = QualityBreakdown(relevance=8, depth=7, temporal_accuracy=6, data_consistency=9)
        assert breakdown.overall == 7.5

    def test_overall_one_decimal(self):
        """Test rounding to one decimal place."""
        breakdown = QualityBreakdown(relevance=7, depth=7, temporal_accuracy=7, data_consistency=8)
        assert breakdown.overall == pytest.approx(7.2, abs=0.051)
        assert round(breakdown.overall, 1) == breakdown.overall

    def test_dict_round_trip(self):
        """Test serialization carries the overall score."""
        breakdown = QualityBreakdown(relevance=9, depth=8, temporal_accuracy=7, data_consistency=6)
        data = breakdown.to_dict()
        assert data["overall"] == 7.5
        assert QualityBreakdown.from_dict(data) == breakdown


class TestFindingOperations:
    """Tests for finding persistence."""

    def test_insert_and_get(self, repo):
        """Test inserting and retrieving a finding."""
        finding = make_finding()
        finding_id = repo.insert_finding(finding)

        assert finding_id
        assert finding.id is not None

        loaded = repo.get_finding(finding_id)
        assert loaded is not None
        assert loaded.title == "Late-cycle slowdown"
        assert loaded.regime == Regime.SLOWDOWN
        assert loaded.key_findings == ["T10Y2Y at 0.14%", "XLF -7.65% YTD"]
        assert loaded.anomalies[0].indicator == "BAMLH0A0HYM2"
        assert loaded.investment_ideas[0].direction == Direction.LONG
        assert loaded.investment_ideas[0].risk == "Rates back up"

    def test_insert_forces_pending(self, repo):
        """Test that a new finding always enters as PENDING."""
        finding = make_finding(verification_status=VerificationStatus.CONFIRMED)
        finding_id = repo.insert_finding(finding)

        loaded = repo.get_finding(finding_id)
        assert loaded.verification_status == VerificationStatus.PENDING
        assert loaded.verified_at is None

    def test_get_missing(self, repo):
        """Test getting a finding that does not exist."""
        assert repo.get_finding("nope") is None

    def test_list_newest_first(self, repo):
        """Test that findings are listed by recency, newest first."""
        base = datetime(2026, 1, 1, 12, 0, 0)
        for n in range(4):
            repo.insert_finding(make_finding(title=f"Run {n}", created_at=base + timedelta(days=n)))

        titles = [f.title for f in repo.list_findings(limit=3)]
        assert titles == ["Run 3", "Run 2", "Run 1"]

    def test_list_empty(self, repo):
        """Test listing an empty store."""
        assert repo.list_findings() == []
        assert repo.count_findings() == 0

    def test_list_by_status(self, repo):
        """Test filtering by verification status."""
        first = repo.insert_finding(make_finding(title="Old"))
        repo.insert_finding(make_finding(title="New"))
        repo.apply_verifications(
            [Verdict(first, VerificationStatus.WRONG)],
            verified_at=datetime.now(),
        )

        pending = repo.list_findings_by_status(VerificationStatus.PENDING)
        assert [f.title for f in pending] == ["New"]
        wrong = repo.list_findings_by_status(VerificationStatus.WRONG)
        assert [f.title for f in wrong] == ["Old"]

    def test_find_by_regime(self, repo):
        """Test matching on regime alone."""
        repo.insert_finding(make_finding(title="Slow", regime=Regime.SLOWDOWN))
        repo.insert_finding(make_finding(title="Boom", regime=Regime.EXPANSION))

        matches = repo.find_by_regime(Regime.EXPANSION)
        assert [f.title for f in matches] == ["Boom"]

    def test_find_by_regime_keyword_case_insensitive(self, repo):
        """Test keyword search across key findings, anomalies and summary."""
        repo.insert_finding(make_finding(title="Spreads", summary="Nothing notable."))
        repo.insert_finding(make_finding(
            title="Sentiment",
            summary="Consumer SENTIMENT collapsed.",
            key_findings=["UMCSENT at 52"],
            anomalies=[],
        ))

        by_summary = repo.find_by_regime(Regime.SLOWDOWN, "sentiment")
        assert [f.title for f in by_summary] == ["Sentiment"]

        by_anomaly = repo.find_by_regime(Regime.SLOWDOWN, "hy spreads")
        assert [f.title for f in by_anomaly] == ["Spreads"]

    def test_find_by_regime_keyword_wildcards_are_literal(self, repo):
        """Test that LIKE wildcards in the keyword match literally."""
        repo.insert_finding(make_finding(
            title="Plain",
            summary="Growth is decelerating.",
            key_findings=["T10Y2Y at 0.14"],
            anomalies=[],
        ))
        repo.insert_finding(make_finding(
            title="Percent",
            summary="Spreads at 3.1% and rising.",
            key_findings=[],
            anomalies=[],
        ))
        assert [f.title for f in repo.find_by_regime(Regime.SLOWDOWN, "%")] == ["Percent"]
        assert repo.find_by_regime(Regime.SLOWDOWN, "_") == []

    def test_quality_stored_on_insert(self, repo):
        """Test that judge scores carried on the record are stored."""
        finding_id = repo.insert_finding(make_finding(
            quality_score=7.5,
            quality_breakdown=QualityBreakdown(8, 7, 6, 9),
        ))

        loaded = repo.get_finding(finding_id)
        assert loaded.quality_score == 7.5
        assert loaded.quality_breakdown.depth == 7

    def test_to_dict_is_denormalised(self, repo):
        """Test the tool-facing view of a finding."""
        finding_id = repo.insert_finding(make_finding())
        data = repo.get_finding(finding_id).to_dict()

        assert data["findingId"] == finding_id
        assert data["verificationStatus"] == "PENDING"
        assert data["investmentIdeas"][0]["direction"] == "LONG"
        assert data["qualityBreakdown"] is None
        json.dumps(data)


class TestVerificationStateMachine:
    """Tests for applying verdicts to prior findings."""

    def test_apply_verdicts(self, repo):
        """Test that each target transitions and records its contribution."""
        ids = [repo.insert_finding(make_finding(title=f"Call {n}")) for n in range(3)]
        verified_at = datetime(2026, 3, 1, 9, 30)

        updated = repo.apply_verifications(
            [
                Verdict(ids[0], VerificationStatus.CONFIRMED),
                Verdict(ids[1], VerificationStatus.PARTIAL),
                Verdict(ids[2], VerificationStatus.WRONG),
            ],
            verified_at=verified_at,
        )

        assert updated == ids
        statuses = [repo.get_finding(i).verification_status for i in ids]
        assert statuses == [
            VerificationStatus.CONFIRMED,
            VerificationStatus.PARTIAL,
            VerificationStatus.WRONG,
        ]
        assert [repo.get_finding(i).prior_call_accuracy for i in ids] == [1.0, 0.5, 0.0]
        assert repo.get_finding(ids[0]).verified_at == verified_at

    def test_commit_finding_with_verdicts(self, repo):
        """Test inserting a finding and its verdicts together."""
        target = repo.insert_finding(make_finding(title="Target"))
        committing = make_finding(title="Committer", prior_call_accuracy=0.5)

        updated = repo.commit_finding(
            committing,
            [Verdict(target, VerificationStatus.PARTIAL)],
            verified_at=datetime(2026, 3, 2),
        )

        assert updated == [target]
        loaded = repo.get_finding(committing.finding_id)
        assert loaded.prior_call_accuracy == 0.5
        assert loaded.verification_status == VerificationStatus.PENDING
        assert repo.get_finding(target).verification_status == VerificationStatus.PARTIAL
        assert repo.get_finding(target).verified_at == datetime(2026, 3, 2)

    def test_commit_finding_rolls_back(self, repo, monkeypatch):
        """Test that a failed verdict write also discards the new finding."""
        target = repo.insert_finding(make_finding(title="Target"))

        def locked(*args, **kwargs):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(repo, "_apply_verdicts", locked)
        with pytest.raises(sqlite3.OperationalError):
            repo.commit_finding(
                make_finding(title="Committer"),
                [Verdict(target, VerificationStatus.CONFIRMED)],
            )

        assert repo.count_findings() == 1
        assert repo.get_finding(target).verification_status == VerificationStatus.PENDING

    def test_last_write_wins(self, repo):
        """Test that a later verdict overwrites an earlier one."""
        target = repo.insert_finding(make_finding())
        repo.apply_verifications([Verdict(target, VerificationStatus.CONFIRMED)], datetime.now())
        repo.apply_verifications([Verdict(target, VerificationStatus.WRONG)], datetime.now())

        loaded = repo.get_finding(target)
        assert loaded.verification_status == VerificationStatus.WRONG
        assert loaded.prior_call_accuracy == 0.0

    def test_unknown_target_skipped(self, repo):
        """Test that verdicts for unknown ids are skipped."""
        target = repo.insert_finding(make_finding())
        updated = repo.apply_verifications(
            [
                Verdict("missing-id", VerificationStatus.CONFIRMED),
                Verdict(target, VerificationStatus.CONFIRMED),
            ],
            verified_at=datetime.now(),
        )
        assert updated == [target]


class TestExpansionTaskOperations:
    """Tests for expansion task persistence."""

    def test_insert_and_get(self, repo):
        """Test inserting and retrieving a task."""
        task = ExpansionTaskRecord(
            description="Add BLS JOLTS openings",
            data_gap="Labour demand is invisible",
            triggered_by_finding_id="f-1",
            external_reference="conv-123",
        )
        task_id = repo.insert_expansion_task(task)

        loaded = repo.get_expansion_task(task_id)
        assert loaded.status == ExpansionStatus.RUNNING
        assert loaded.external_reference == "conv-123"
        assert loaded.triggered_by_finding_id == "f-1"
        assert loaded.requested_at is not None

    def test_list_by_status(self, repo):
        """Test listing tasks filtered by status."""
        repo.insert_expansion_task(ExpansionTaskRecord(description="a", data_gap="x"))
        repo.insert_expansion_task(ExpansionTaskRecord(
            description="b", data_gap="y", status=ExpansionStatus.FAILED,
        ))

        assert len(repo.list_expansion_tasks()) == 2
        running = repo.list_expansion_tasks(status=ExpansionStatus.RUNNING)
        assert [t.description for t in running] == ["a"]


class TestMarketObjects:
    """Tests for snapshot reads."""

    def test_read_decodes_json_columns(self, repo):
        """Test that JSON list columns are decoded."""
        repo.conn.execute(
            """
            INSERT INTO sector_snapshots (
                snapshot_id, sector_ticker, sector_name, date, ytd_change_pct,
                primary_macro_drivers, sector_signal, signal_rationale, ingested_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            ("XLF-2026-03-01", "XLF", "Financials", "2026-03-01", -7.65,
             json.dumps(["T10Y2Y", "FEDFUNDS"]), "BEARISH", "Flat curve", "2026-03-01T00:00:00"),
        )
        repo.conn.commit()

        rows = repo.read_market_objects(MarketObjectType.SECTOR_SNAPSHOT)
        assert len(rows) == 1
        assert rows[0]["sector_ticker"] == "XLF"
        assert rows[0]["primary_macro_drivers"] == ["T10Y2Y", "FEDFUNDS"]

    def test_read_empty(self, repo):
        """Test reading a type with no rows."""
        assert repo.read_market_objects(MarketObjectType.CRYPTO_METRIC) == []


class TestSessionAudit:
    """Tests for session and tool call records."""

    def test_session_lifecycle(self, repo):
        """Test inserting and updating a session."""
        session = SessionRecord(session_id="abc12345", goal="Assess the regime")
        repo.insert_session(session)

        session.status = SessionStatus.BUDGET_EXHAUSTED
        session.turns_used = 14
        session.finding_id = "f-1"
        session.termination_reason = "Max turns reached"
        session.terminated_at = datetime.now()
        repo.update_session(session)

        loaded = repo.get_session("abc12345")
        assert loaded.status == SessionStatus.BUDGET_EXHAUSTED
        assert loaded.turns_used == 14
        assert loaded.finding_id == "f-1"

    def test_tool_calls(self, repo):
        """Test recording and filtering tool calls."""
        for n, name in enumerate(["read_prior_findings", "commit_finding"]):
            repo.insert_tool_call(ToolCallRecord(
                session_id="abc12345",
                turn_number=n + 1,
                invocation_id=f"call_{n}",
                tool_name=name,
                arguments_json="{}",
                output="ok",
                started_at=datetime.now(),
                duration_ms=3,
            ))

        calls = repo.get_tool_calls("abc12345")
        assert [c.tool_name for c in calls] == ["read_prior_findings", "commit_finding"]
        commits = repo.get_tool_calls("abc12345", tool_name="commit_finding")
        assert commits[0].invocation_id == "call_1"
        assert commits[0].is_error is False


class TestConnection:
    """Tests for connection handling."""

    def test_not_connected(self, temp_db):
        """Test using the repository before connecting."""
        repo = ResearchRepository(temp_db)
        assert repo.is_connected is False
        with pytest.raises(RuntimeError):
            repo.conn

    def test_two_connections_share_findings(self, temp_db):
        """Test that independent sessions see each other's findings."""
        a = ResearchRepository(temp_db)
        b = ResearchRepository(temp_db)
        a.connect()
        b.connect()
        try:
            finding_id = a.insert_finding(make_finding())
            assert b.get_finding(finding_id) is not None
        finally:
            a.close()
            b.close()

    def test_wal_mode(self, repo):
        """Test that the database uses write-ahead logging."""
        mode = repo.conn.execute("PRAGMA journal_mode").fetchone()[0]
        assert mode.lower() == "wal"
        assert isinstance(repo.conn, sqlite3.Connection)
