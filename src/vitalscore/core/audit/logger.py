"""Audit logger: PHI-free trail of score writes, deletions and tool calls.

Every persisted score, deletion, retention purge and legacy migration is
recorded in the ``audit_log`` table. No health values are stored:

* ``tool_input_hash``: SHA-256 of the canonical JSON tool input.
* ``baseline_hash`` : SHA-256 of the canonical baseline snapshot a score
  was computed from, so a saved score can later be matched to the exact
  inputs that produced it.
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from vitalscore.core.storage.database import HealthDatabase

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Input hashing
# ---------------------------------------------------------------------------

def hash_canonical(data: Any) -> str:
    """SHA-256 hash of canonical JSON.

    Args:
        data: Value to hash. Must be JSON-serializable.

    Returns:
        Hex-encoded SHA-256 digest, or empty string on failure.
    """
    try:
        canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode()).hexdigest()
    except (TypeError, ValueError):
        return ""


# ---------------------------------------------------------------------------
# AuditEvent dataclass
# ---------------------------------------------------------------------------

@dataclass
class AuditEvent:
    """A single audit log entry."""

    action: str                          # 'tool_invocation' | 'score_upsert' | 'score_delete'
                                         # | 'retention_purge' | 'legacy_migration'
    tool_name: str = ""
    tool_input_hash: str = ""
    score_type: str | None = None
    score_date: str | None = None
    baseline_hash: str | None = None
    duration_ms: float | None = None
    status: str = "success"              # 'success' | 'failure' | 'skipped'
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# AuditLogger
# ---------------------------------------------------------------------------

class AuditLogger:
    """Records audit events to the ``audit_log`` SQLite table.

    All writes are committed immediately. A failed audit write is logged
    and never interrupts the operation being audited.

    Usage::

        audit = AuditLogger(health_db)
        audit.log_score_upsert(
            score_type="recovery",
            score_date="2026-03-14",
            baseline_snapshot=snapshot.to_dict(),
        )
    """

    def __init__(self, database: HealthDatabase) -> None:
        self._db = database

    # ---------------------------------------------------------------
    # Write
    # ---------------------------------------------------------------

    def log_event(self, event: AuditEvent) -> str:
        """Insert an audit event and return its UUID (empty string on failure)."""
        event_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()

        metadata_json = (
            json.dumps(event.metadata, separators=(",", ":"))
            if event.metadata
            else None
        )

        try:
            conn = self._db.connection
            conn.execute(
                """INSERT INTO audit_log
                   (id, timestamp, action, tool_name, tool_input_hash,
                    score_type, score_date, baseline_hash,
                    duration_ms, status, error_type, metadata_json)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    event_id,
                    now,
                    event.action,
                    event.tool_name or None,
                    event.tool_input_hash or None,
                    event.score_type,
                    event.score_date,
                    event.baseline_hash,
                    event.duration_ms,
                    event.status,
                    event.error_type,
                    metadata_json,
                ),
            )
            conn.commit()
        except Exception:
            logger.exception("Failed to write audit event: event lost")
            return ""

        return event_id

    def log_tool_call(
        self,
        tool_name: str,
        tool_input: Any = None,
        *,
        duration_ms: float | None = None,
        status: str = "success",
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Convenience wrapper for logging a tool invocation.

        Args:
            tool_name: Name of the MCP tool.
            tool_input: Tool input data (hashed, never stored raw).
            duration_ms: Tool execution duration in milliseconds.
            status: 'success' or 'failure'.
            error_type: Exception class name on failure.
            metadata: Additional non-PHI metadata.
        """
        return self.log_event(AuditEvent(
            action="tool_invocation",
            tool_name=tool_name,
            tool_input_hash=hash_canonical(tool_input) if tool_input else "",
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def log_score_upsert(
        self,
        *,
        score_type: str,
        score_date: str,
        baseline_snapshot: dict[str, Any],
        tool_name: str = "",
    ) -> str:
        """Log a score save along with the hash of its baseline snapshot."""
        return self.log_event(AuditEvent(
            action="score_upsert",
            tool_name=tool_name,
            score_type=score_type,
            score_date=score_date,
            baseline_hash=hash_canonical(baseline_snapshot),
        ))

    def log_score_delete(
        self,
        *,
        tool_name: str = "",
        score_type: str | None = None,
        score_date: str | None = None,
        count: int = 0,
        action: str = "score_delete",
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Log a deletion (single score or retention purge).

        Args:
            tool_name: Tool that initiated the delete.
            score_type: Score type deleted, if a single score.
            score_date: Day deleted, if a single score.
            count: Number of rows removed.
            action: 'score_delete' or 'retention_purge'.
            metadata: Additional context.
        """
        return self.log_event(AuditEvent(
            action=action,
            tool_name=tool_name,
            score_type=score_type,
            score_date=score_date,
            metadata={**(metadata or {}), "records_deleted": count},
        ))

    def log_migration(
        self,
        *,
        imported: int,
        skipped: int,
        status: str = "success",
        error_type: str | None = None,
    ) -> str:
        """Log the outcome of the one-time legacy history import."""
        return self.log_event(AuditEvent(
            action="legacy_migration",
            status=status,
            error_type=error_type,
            metadata={"imported": imported, "skipped": skipped},
        ))

    # ---------------------------------------------------------------
    # Read
    # ---------------------------------------------------------------

    def get_events(
        self,
        *,
        action: str | None = None,
        tool_name: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Query audit events with optional filters.

        Args:
            action: Filter by action type.
            tool_name: Filter by tool name.
            since: ISO 8601 timestamp lower bound.
            limit: Maximum events to return.

        Returns:
            List of event dicts, newest first.
        """
        conditions: list[str] = []
        params: list[Any] = []

        if action:
            conditions.append("action = ?")
            params.append(action)
        if tool_name:
            conditions.append("tool_name = ?")
            params.append(tool_name)
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)

        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        query = f"SELECT * FROM audit_log{where} ORDER BY timestamp DESC LIMIT ?"
        params.append(limit)

        rows = self._db.connection.execute(query, params).fetchall()
        return [dict(row) for row in rows]

    def count_events(self, *, action: str | None = None, since: str | None = None) -> int:
        """Count audit events, optionally filtered by action and lower time bound."""
        conditions: list[str] = []
        params: list[Any] = []
        if action:
            conditions.append("action = ?")
            params.append(action)
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)
        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        row = self._db.connection.execute(
            f"SELECT COUNT(*) FROM audit_log{where}", params
        ).fetchone()
        return row[0]
