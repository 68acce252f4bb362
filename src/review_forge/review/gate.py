"""
ReviewGate - manual approval queue, feature flags and metric rows (SQLite).

When the ``review_gate`` flag is on, completed reviews are held as
pending rows instead of being posted. Resolution is a compare-and-set on
``status = 'pending'``, so of two concurrent resolutions exactly one wins.

Schema:
  feature_flags     - named boolean switches
  pending_reviews   - reviews awaiting approval, result stored as JSON
  feedback_metrics  - one immutable row per recorded feedback signal
  review_metrics    - one immutable row per posted review

Gate and flag errors raise GateUnavailableError; metric writes are
best-effort and only logged.
"""

from __future__ import annotations

import asyncio
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from review_forge.errors import GateUnavailableError
from review_forge.models import FeatureFlag, PendingReview, PendingStatus, PRContext, ReviewResult

logger = structlog.get_logger(__name__)

REVIEW_GATE_FLAG = "review_gate"
SYNC_FLAG = "sync_enabled"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS feature_flags (
    key         TEXT PRIMARY KEY,
    enabled     INTEGER NOT NULL DEFAULT 0,
    updated_at  TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS pending_reviews (
    id               TEXT PRIMARY KEY,
    created_at       TEXT NOT NULL,
    repo             TEXT NOT NULL,
    owner            TEXT NOT NULL,
    pull_number      INTEGER NOT NULL,
    head_sha         TEXT NOT NULL,
    installation_id  INTEGER NOT NULL DEFAULT 0,
    result_json      TEXT NOT NULL,
    status           TEXT NOT NULL DEFAULT 'pending',
    resolved_at      TEXT
);
CREATE INDEX IF NOT EXISTS idx_pending_status ON pending_reviews (status, created_at);
CREATE TABLE IF NOT EXISTS feedback_metrics (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    created_at      TEXT NOT NULL,
    repo            TEXT NOT NULL,
    pull_number     INTEGER NOT NULL,
    interaction_id  TEXT NOT NULL,
    feedback_type   TEXT NOT NULL,
    comment_source  TEXT NOT NULL,
    category        TEXT NOT NULL,
    positive        INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS review_metrics (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    created_at        TEXT NOT NULL,
    repo              TEXT NOT NULL,
    pull_number       INTEGER NOT NULL,
    head_sha          TEXT NOT NULL,
    files_reviewed    INTEGER NOT NULL,
    rule_findings     INTEGER NOT NULL,
    llm_findings      INTEGER NOT NULL,
    inline_comments   INTEGER NOT NULL,
    tool_calls        INTEGER NOT NULL,
    chunks_used       INTEGER NOT NULL,
    duration_ms       INTEGER NOT NULL,
    event             TEXT NOT NULL
);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ReviewGate:
    """Persistence for the approval gate and its companion metrics."""

    def __init__(self, db_path: str = "review_forge.db"):
        """
        Open (and create if needed) the gate database.

        Args:
            db_path: SQLite file path, or ":memory:"
        """
        self.db_path = db_path
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        except sqlite3.Error as e:
            raise GateUnavailableError(f"Cannot open gate database {db_path}: {e}") from e

    def close(self) -> None:
        self._conn.close()

    async def _run(self, fn, *args) -> Any:
        """Run a blocking database call off the event loop."""
        try:
            return await asyncio.to_thread(self._locked, fn, *args)
        except sqlite3.Error as e:
            logger.error("Gate database error", db=self.db_path, error=str(e))
            raise GateUnavailableError(str(e)) from e

    def _locked(self, fn, *args) -> Any:
        with self._lock:
            return fn(*args)

    # =========================================================================
    # Feature flags
    # =========================================================================

    async def get_flag(self, key: str) -> bool:
        """Flag value; an absent flag is False."""
        flag = await self.get_feature_flag(key)
        return flag.enabled if flag else False

    async def get_feature_flag(self, key: str) -> Optional[FeatureFlag]:
        row = await self._run(self._select_flag, key)
        return self._row_to_flag(row) if row else None

    async def list_flags(self) -> list[FeatureFlag]:
        rows = await self._run(self._select_flags)
        return [self._row_to_flag(r) for r in rows]

    async def set_flag(self, key: str, enabled: bool) -> FeatureFlag:
        """Create or update a flag."""
        row = await self._run(self._upsert_flag, key, enabled)
        logger.info("Feature flag set", key=key, enabled=enabled)
        return self._row_to_flag(row)

    async def is_enabled(self) -> bool:
        """Whether reviews are held for approval."""
        return await self.get_flag(REVIEW_GATE_FLAG)

    def _select_flag(self, key: str) -> Optional[sqlite3.Row]:
        return self._conn.execute("SELECT * FROM feature_flags WHERE key=?", (key,)).fetchone()

    def _select_flags(self) -> list[sqlite3.Row]:
        return self._conn.execute("SELECT * FROM feature_flags ORDER BY key").fetchall()

    def _upsert_flag(self, key: str, enabled: bool) -> sqlite3.Row:
        self._conn.execute(
            """
            INSERT INTO feature_flags (key, enabled, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET enabled=excluded.enabled, updated_at=excluded.updated_at
            """,
            (key, int(enabled), _now()),
        )
        self._conn.commit()
        return self._select_flag(key)

    # =========================================================================
    # Pending reviews
    # =========================================================================

    async def hold(self, ctx: PRContext, result: ReviewResult) -> PendingReview:
        """Queue a completed review for approval."""
        pending = PendingReview(
            id=str(uuid.uuid4()),
            repo=ctx.repo,
            owner=ctx.owner,
            pull_number=ctx.pull_number,
            head_sha=ctx.head_sha,
            installation_id=ctx.installation_id,
            result=result,
            created_at=datetime.now(timezone.utc),
        )
        await self._run(self._insert_pending, pending)
        logger.info("Review held for approval", id=pending.id, repo=ctx.full_name, pr=ctx.pull_number)
        return pending

    async def get_pending(self, review_id: str) -> Optional[PendingReview]:
        row = await self._run(self._select_pending, review_id)
        return self._row_to_pending(row) if row else None

    async def list_pending(self, status: Optional[PendingStatus] = None, limit: int = 50) -> list[PendingReview]:
        rows = await self._run(self._select_pending_list, status.value if status else None, limit)
        return [self._row_to_pending(r) for r in rows]

    async def approve(self, review_id: str) -> Optional[PendingReview]:
        """Mark a pending review approved; None if it was not pending."""
        return await self._resolve(review_id, PendingStatus.APPROVED)

    async def reject(self, review_id: str) -> Optional[PendingReview]:
        """Mark a pending review rejected; None if it was not pending."""
        return await self._resolve(review_id, PendingStatus.REJECTED)

    async def _resolve(self, review_id: str, status: PendingStatus) -> Optional[PendingReview]:
        row = await self._run(self._compare_and_set, review_id, status.value)
        if row is None:
            logger.info("Pending review not found or already resolved", id=review_id)
            return None
        logger.info("Pending review resolved", id=review_id, status=status.value)
        return self._row_to_pending(row)

    def _insert_pending(self, pending: PendingReview) -> None:
        self._conn.execute(
            """
            INSERT INTO pending_reviews
              (id, created_at, repo, owner, pull_number, head_sha, installation_id, result_json, status)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                pending.id,
                pending.created_at.isoformat(),
                pending.repo,
                pending.owner,
                pending.pull_number,
                pending.head_sha,
                pending.installation_id,
                pending.result.model_dump_json(),
                pending.status.value,
            ),
        )
        self._conn.commit()

    def _select_pending(self, review_id: str) -> Optional[sqlite3.Row]:
        return self._conn.execute("SELECT * FROM pending_reviews WHERE id=?", (review_id,)).fetchone()

    def _select_pending_list(self, status: Optional[str], limit: int) -> list[sqlite3.Row]:
        if status is not None:
            return self._conn.execute(
                "SELECT * FROM pending_reviews WHERE status=? ORDER BY created_at DESC LIMIT ?",
                (status, limit),
            ).fetchall()
        return self._conn.execute(
            "SELECT * FROM pending_reviews ORDER BY created_at DESC LIMIT ?",
            (limit,),
        ).fetchall()

    def _compare_and_set(self, review_id: str, status: str) -> Optional[sqlite3.Row]:
        cursor = self._conn.execute(
            "UPDATE pending_reviews SET status=?, resolved_at=? WHERE id=? AND status='pending'",
            (status, _now(), review_id),
        )
        self._conn.commit()
        if cursor.rowcount == 0:
            return None
        return self._select_pending(review_id)

    # =========================================================================
    # Metrics
    # =========================================================================

    async def record_feedback_metric(
        self,
        repo: str,
        pull_number: int,
        interaction_id: str,
        feedback_type: str,
        positive: bool,
        comment_source: str = "llm",
        category: str = "general",
    ) -> None:
        """Append a feedback row; failures are logged, not raised."""
        try:
            await self._run(
                self._insert_row,
                "INSERT INTO feedback_metrics (created_at, repo, pull_number, interaction_id, "
                "feedback_type, comment_source, category, positive) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (_now(), repo, pull_number, interaction_id, feedback_type, comment_source, category, int(positive)),
            )
        except GateUnavailableError as e:
            logger.warning("Failed to record feedback metric", interaction_id=interaction_id, error=str(e))

    async def record_review_metric(
        self,
        ctx: PRContext,
        files_reviewed: int,
        rule_findings: int,
        llm_findings: int,
        inline_comments: int,
        tool_calls: int,
        chunks_used: int,
        duration_ms: int,
        event: str,
    ) -> None:
        """Append a review row; failures are logged, not raised."""
        try:
            await self._run(
                self._insert_row,
                "INSERT INTO review_metrics (created_at, repo, pull_number, head_sha, files_reviewed, "
                "rule_findings, llm_findings, inline_comments, tool_calls, chunks_used, duration_ms, event) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    _now(),
                    ctx.full_name,
                    ctx.pull_number,
                    ctx.head_sha,
                    files_reviewed,
                    rule_findings,
                    llm_findings,
                    inline_comments,
                    tool_calls,
                    chunks_used,
                    duration_ms,
                    event,
                ),
            )
        except GateUnavailableError as e:
            logger.warning("Failed to record review metric", repo=ctx.full_name, error=str(e))

    async def count_feedback(self, interaction_id: Optional[str] = None) -> int:
        """Number of feedback rows, optionally for one interaction."""
        row = await self._run(self._count_feedback, interaction_id)
        return int(row[0])

    def _insert_row(self, sql: str, params: tuple) -> None:
        self._conn.execute(sql, params)
        self._conn.commit()

    def _count_feedback(self, interaction_id: Optional[str]) -> sqlite3.Row:
        if interaction_id:
            return self._conn.execute(
                "SELECT COUNT(*) FROM feedback_metrics WHERE interaction_id=?", (interaction_id,)
            ).fetchone()
        return self._conn.execute("SELECT COUNT(*) FROM feedback_metrics").fetchone()

    # =========================================================================
    # Row mapping
    # =========================================================================

    @staticmethod
    def _row_to_flag(row: sqlite3.Row) -> FeatureFlag:
        return FeatureFlag(
            key=row["key"],
            enabled=bool(row["enabled"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    @staticmethod
    def _row_to_pending(row: sqlite3.Row) -> PendingReview:
        return PendingReview(
            id=row["id"],
            repo=row["repo"],
            owner=row["owner"],
            pull_number=row["pull_number"],
            head_sha=row["head_sha"],
            installation_id=row["installation_id"],
            result=ReviewResult.model_validate_json(row["result_json"]),
            status=PendingStatus(row["status"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            resolved_at=datetime.fromisoformat(row["resolved_at"]) if row["resolved_at"] else None,
        )
