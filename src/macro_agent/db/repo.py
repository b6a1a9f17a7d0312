"""Repository for research agent database operations."""

import json
import logging
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

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
)

logger = logging.getLogger(__name__)

# Columns stored as JSON-encoded lists by the ingestion pipeline
_JSON_COLUMNS = {"primary_macro_drivers", "primary_metric_drivers"}


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class ResearchRepository:
    """Database repository for the research agent.

    Holds the findings log (the agent's memory), expansion tasks, session
    audit records and the read-only market snapshot tables. Several
    sessions may share one database file: WAL mode lets inserts and reads
    proceed concurrently, and verification updates are plain UPDATEs where
    the last writer wins.
    """

    def __init__(self, db_path: str | Path = "research.db", timeout: float = 30.0):
        """Initialize the repository.

        Args:
            db_path: Path to the SQLite database file
            timeout: Seconds to wait on a locked database before failing
        """
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Connect to the database and initialize schema."""
        self._conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode = WAL")
        self._init_schema()

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _init_schema(self) -> None:
        """Initialize the database schema."""
        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path) as f:
            schema = f.read()
        self._conn.executescript(schema)
        self._conn.commit()

    @property
    def conn(self) -> sqlite3.Connection:
        """Get the database connection, raising if not connected."""
        if self._conn is None:
            raise RuntimeError("Not connected to database. Call connect() first.")
        return self._conn

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    # =========================================================================
    # Finding operations
    # =========================================================================

    def insert_finding(self, finding: FindingRecord) -> str:
        """Insert a new finding.

        The finding always enters the log as PENDING, whatever status the
        record carries.

        Returns:
            The finding_id of the inserted finding.
        """
        with self.conn:
            self._insert_finding_row(finding)
        return finding.finding_id

    def commit_finding(
        self,
        finding: FindingRecord,
        verdicts: Iterable[Verdict] = (),
        verified_at: datetime | None = None,
    ) -> list[str]:
        """Insert a finding and apply its verdicts in one transaction.

        The finding's quality scores and prior_call_accuracy are written as
        carried on the record. Either everything is stored or nothing is.

        Returns:
            The finding_ids of prior findings that were updated.
        """
        with self.conn:
            self._insert_finding_row(finding)
            return self._apply_verdicts(verdicts, verified_at or finding.created_at)

    def _insert_finding_row(self, finding: FindingRecord) -> None:
        """Insert a finding without committing; the caller owns the transaction."""
        if finding.finding_id is None:
            finding.finding_id = str(uuid.uuid4())
        if finding.created_at is None:
            finding.created_at = datetime.now()
        finding.verification_status = VerificationStatus.PENDING
        finding.verified_at = None

        cursor = self.conn.execute(
            """
            INSERT INTO findings (
                finding_id, created_at, session_id, title, regime, confidence,
                conviction_score, summary, key_findings_json, anomalies_json,
                investment_ideas_json, verification_status, prior_call_accuracy,
                quality_score, quality_breakdown_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                finding.finding_id,
                finding.created_at.isoformat(),
                finding.session_id,
                finding.title,
                finding.regime.value,
                finding.confidence.value,
                finding.conviction_score,
                finding.summary,
                json.dumps(finding.key_findings),
                finding.anomalies_json(),
                finding.investment_ideas_json(),
                finding.verification_status.value,
                finding.prior_call_accuracy,
                finding.quality_score,
                json.dumps(finding.quality_breakdown.to_dict()) if finding.quality_breakdown else None,
            )
        )
        finding.id = cursor.lastrowid

    def get_finding(self, finding_id: str) -> FindingRecord | None:
        """Get a finding by its finding_id."""
        cursor = self.conn.execute(
            "SELECT * FROM findings WHERE finding_id = ?",
            (finding_id,)
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_finding(row)

    def count_findings(self) -> int:
        cursor = self.conn.execute("SELECT COUNT(*) FROM findings")
        return cursor.fetchone()[0]

    def list_findings(self, limit: int = 5) -> list[FindingRecord]:
        """Most recent findings first."""
        cursor = self.conn.execute(
            "SELECT * FROM findings ORDER BY created_at DESC, id DESC LIMIT ?",
            (limit,)
        )
        return [self._row_to_finding(row) for row in cursor.fetchall()]

    def list_findings_by_status(
        self,
        status: VerificationStatus,
        limit: int = 3,
    ) -> list[FindingRecord]:
        """Most recent findings with the given verification status."""
        cursor = self.conn.execute(
            """
            SELECT * FROM findings
            WHERE verification_status = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (status.value, limit)
        )
        return [self._row_to_finding(row) for row in cursor.fetchall()]

    def find_by_regime(
        self,
        regime: Regime,
        keyword: str | None = None,
        limit: int = 5,
    ) -> list[FindingRecord]:
        """Findings in a regime, optionally matching a keyword.

        The keyword is a case-insensitive substring match over the key
        findings, anomalies and summary text.
        """
        query = "SELECT * FROM findings WHERE regime = ?"
        params: list[Any] = [regime.value]

        if keyword:
            escaped = (
                keyword.lower()
                .replace("\\", "\\\\")
                .replace("%", "\\%")
                .replace("_", "\\_")
            )
            pattern = f"%{escaped}%"
            query += (
                " AND (LOWER(key_findings_json) LIKE ? ESCAPE '\\'"
                " OR LOWER(anomalies_json) LIKE ? ESCAPE '\\'"
                " OR LOWER(summary) LIKE ? ESCAPE '\\')"
            )
            params.extend([pattern, pattern, pattern])

        query += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)

        cursor = self.conn.execute(query, params)
        return [self._row_to_finding(row) for row in cursor.fetchall()]

    def apply_verifications(
        self,
        verdicts: Iterable[Verdict],
        verified_at: datetime,
    ) -> list[str]:
        """Apply verdicts to prior findings in a single transaction.

        Each target's status is overwritten (no verdict history is kept)
        and its prior_call_accuracy set to the verdict's contribution.

        Returns:
            The finding_ids that were updated; unknown ids are skipped.
        """
        with self.conn:
            return self._apply_verdicts(verdicts, verified_at)

    def _apply_verdicts(self, verdicts: Iterable[Verdict], verified_at: datetime) -> list[str]:
        updated = []
        for verdict in verdicts:
            cursor = self.conn.execute(
                """
                UPDATE findings SET
                    verification_status = ?,
                    verified_at = ?,
                    prior_call_accuracy = ?
                WHERE finding_id = ?
                """,
                (
                    verdict.accuracy.value,
                    verified_at.isoformat(),
                    verdict.accuracy.contribution,
                    verdict.target_finding_id,
                )
            )
            if cursor.rowcount:
                updated.append(verdict.target_finding_id)
            else:
                logger.warning(f"Verdict for unknown finding: {verdict.target_finding_id}")
        return updated

    def _row_to_finding(self, row: sqlite3.Row) -> FindingRecord:
        """Convert a database row to a FindingRecord."""
        anomalies = [Anomaly(**a) for a in json.loads(row["anomalies_json"])]
        ideas = [
            InvestmentIdea(
                ticker=i["ticker"],
                direction=Direction(i["direction"]),
                thesis=i["thesis"],
                catalyst=i["catalyst"],
                risk=i["risk"],
            )
            for i in json.loads(row["investment_ideas_json"])
        ]
        breakdown_json = row["quality_breakdown_json"]
        return FindingRecord(
            id=row["id"],
            finding_id=row["finding_id"],
            created_at=_parse_dt(row["created_at"]),
            session_id=row["session_id"],
            title=row["title"],
            regime=Regime(row["regime"]),
            confidence=ConfidenceLevel(row["confidence"]),
            conviction_score=row["conviction_score"],
            summary=row["summary"],
            key_findings=json.loads(row["key_findings_json"]),
            anomalies=anomalies,
            investment_ideas=ideas,
            verification_status=VerificationStatus(row["verification_status"]),
            verified_at=_parse_dt(row["verified_at"]),
            prior_call_accuracy=row["prior_call_accuracy"],
            quality_score=row["quality_score"],
            quality_breakdown=QualityBreakdown.from_dict(json.loads(breakdown_json)) if breakdown_json else None,
        )

    # =========================================================================
    # Expansion task operations
    # =========================================================================

    def insert_expansion_task(self, task: ExpansionTaskRecord) -> str:
        """Insert an expansion task.

        Returns:
            The task_id of the inserted task.
        """
        if task.task_id is None:
            task.task_id = str(uuid.uuid4())
        if task.requested_at is None:
            task.requested_at = datetime.now()

        cursor = self.conn.execute(
            """
            INSERT INTO expansion_tasks (
                task_id, requested_at, triggered_by_finding_id, description,
                data_gap, status, external_reference, result, completed_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task.task_id,
                task.requested_at.isoformat(),
                task.triggered_by_finding_id,
                task.description,
                task.data_gap,
                task.status.value,
                task.external_reference,
                task.result,
                task.completed_at.isoformat() if task.completed_at else None,
            )
        )
        self.conn.commit()
        task.id = cursor.lastrowid
        return task.task_id

    def get_expansion_task(self, task_id: str) -> ExpansionTaskRecord | None:
        """Get an expansion task by its task_id."""
        cursor = self.conn.execute(
            "SELECT * FROM expansion_tasks WHERE task_id = ?",
            (task_id,)
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_expansion_task(row)

    def list_expansion_tasks(
        self,
        status: ExpansionStatus | None = None,
        limit: int | None = None,
    ) -> list[ExpansionTaskRecord]:
        """List expansion tasks, newest first."""
        query = "SELECT * FROM expansion_tasks"
        params: list[Any] = []

        if status:
            query += " WHERE status = ?"
            params.append(status.value)

        query += " ORDER BY requested_at DESC, id DESC"

        if limit:
            query += " LIMIT ?"
            params.append(limit)

        cursor = self.conn.execute(query, params)
        return [self._row_to_expansion_task(row) for row in cursor.fetchall()]

    def _row_to_expansion_task(self, row: sqlite3.Row) -> ExpansionTaskRecord:
        """Convert a database row to an ExpansionTaskRecord."""
        return ExpansionTaskRecord(
            id=row["id"],
            task_id=row["task_id"],
            requested_at=_parse_dt(row["requested_at"]),
            triggered_by_finding_id=row["triggered_by_finding_id"],
            description=row["description"],
            data_gap=row["data_gap"],
            status=ExpansionStatus(row["status"]),
            external_reference=row["external_reference"],
            result=row["result"],
            completed_at=_parse_dt(row["completed_at"]),
        )

    # =========================================================================
    # Market snapshot reads
    # =========================================================================

    def read_market_objects(self, object_type: MarketObjectType) -> list[dict[str, Any]]:
        """Latest snapshot rows for an object type, JSON columns decoded."""
        cursor = self.conn.execute(f"SELECT * FROM {object_type.table}")
        rows = []
        for row in cursor.fetchall():
            data = dict(row)
            for key in _JSON_COLUMNS & data.keys():
                if isinstance(data[key], str):
                    try:
                        data[key] = json.loads(data[key])
                    except json.JSONDecodeError:
                        pass
            rows.append(data)
        return rows

    # =========================================================================
    # Session operations
    # =========================================================================

    def insert_session(self, session: SessionRecord) -> int:
        """Insert a new session.

        Returns:
            The database ID of the inserted session.
        """
        cursor = self.conn.execute(
            """
            INSERT INTO sessions (
                session_id, goal, status, model_id, config_json, turns_used
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                session.session_id,
                session.goal,
                session.status.value,
                session.model_id,
                session.config_json,
                session.turns_used,
            )
        )
        self.conn.commit()
        session.id = cursor.lastrowid
        return cursor.lastrowid

    def get_session(self, session_id: str) -> SessionRecord | None:
        """Get a session by its session_id."""
        cursor = self.conn.execute(
            "SELECT * FROM sessions WHERE session_id = ?",
            (session_id,)
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return SessionRecord(
            id=row["id"],
            session_id=row["session_id"],
            goal=row["goal"],
            status=SessionStatus(row["status"]),
            model_id=row["model_id"],
            config_json=row["config_json"],
            turns_used=row["turns_used"],
            finding_id=row["finding_id"],
            termination_reason=row["termination_reason"],
            created_at=_parse_dt(row["created_at"]),
            terminated_at=_parse_dt(row["terminated_at"]),
        )

    def update_session(self, session: SessionRecord) -> None:
        """Update an existing session."""
        self.conn.execute(
            """
            UPDATE sessions SET
                status = ?,
                turns_used = ?,
                finding_id = ?,
                termination_reason = ?,
                terminated_at = ?
            WHERE session_id = ?
            """,
            (
                session.status.value,
                session.turns_used,
                session.finding_id,
                session.termination_reason,
                session.terminated_at.isoformat() if session.terminated_at else None,
                session.session_id,
            )
        )
        self.conn.commit()

    # =========================================================================
    # Tool call operations
    # =========================================================================

    def insert_tool_call(self, call: ToolCallRecord) -> int:
        """Insert a tool call record."""
        cursor = self.conn.execute(
            """
            INSERT INTO tool_calls (
                session_id, turn_number, invocation_id, tool_name,
                arguments_json, output, is_error, started_at, duration_ms
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                call.session_id,
                call.turn_number,
                call.invocation_id,
                call.tool_name,
                call.arguments_json,
                call.output,
                1 if call.is_error else 0,
                call.started_at.isoformat() if call.started_at else None,
                call.duration_ms,
            )
        )
        self.conn.commit()
        call.id = cursor.lastrowid
        return cursor.lastrowid

    def get_tool_calls(
        self,
        session_id: str,
        tool_name: str | None = None,
    ) -> list[ToolCallRecord]:
        """Get tool calls for a session in execution order."""
        query = "SELECT * FROM tool_calls WHERE session_id = ?"
        params: list[Any] = [session_id]

        if tool_name:
            query += " AND tool_name = ?"
            params.append(tool_name)

        query += " ORDER BY turn_number, id"

        cursor = self.conn.execute(query, params)
        return [
            ToolCallRecord(
                id=row["id"],
                session_id=row["session_id"],
                turn_number=row["turn_number"],
                invocation_id=row["invocation_id"],
                tool_name=row["tool_name"],
                arguments_json=row["arguments_json"],
                output=row["output"],
                is_error=bool(row["is_error"]),
                started_at=_parse_dt(row["started_at"]),
                duration_ms=row["duration_ms"],
            )
            for row in cursor.fetchall()
        ]
