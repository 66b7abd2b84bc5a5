"""Score history store: durable, idempotent persistence of composite scores.

Each row holds one composite score for one calendar day together with the
encrypted baseline snapshot it was computed from. Rows are keyed by
``(score_date, score_type)``; saving the same key again replaces the row
in a single ``INSERT ... ON CONFLICT DO UPDATE`` statement, so a reader
never observes zero or two rows for a key.
"""

from __future__ import annotations

import functools
import logging
import sqlite3
import uuid
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from vitalscore.core.audit.logger import hash_canonical
from vitalscore.core.storage.database import HealthDatabase
from vitalscore.core.storage.encryption import FieldEncryptor
from vitalscore.core.storage.legacy import (
    LEGACY_MIGRATION_NAME,
    MigrationError,
    read_legacy_history,
)
from vitalscore.core.storage.models import PersistedScore, ScoreType, day_key

if TYPE_CHECKING:
    from vitalscore.core.audit.logger import AuditLogger

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class PersistenceError(Exception):
    """Raised when a store operation still fails after one retry.

    The error is recoverable: nothing in the in-memory cache depends on it,
    and the caller may simply try the save again later.
    """


def _retry_once(operation: Callable[..., _T]) -> Callable[..., _T]:
    """Retry a store operation once on ``sqlite3.Error``, then raise PersistenceError."""

    @functools.wraps(operation)
    def wrapper(self: ScoreHistoryStore, *args: Any, **kwargs: Any) -> _T:
        try:
            return operation(self, *args, **kwargs)
        except sqlite3.Error as exc:
            self._rollback()
            logger.warning("%s failed (%s); retrying once", operation.__name__, exc)
        try:
            return operation(self, *args, **kwargs)
        except sqlite3.Error as exc:
            self._rollback()
            raise PersistenceError(
                f"{operation.__name__} failed after retry: {exc}"
            ) from exc

    return wrapper


_UPSERT_SQL = """
INSERT INTO score_history (
    id, score_date, score_type, final_score,
    baseline_enc, baseline_hash, calculated_at, updated_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(score_date, score_type) DO UPDATE SET
    final_score   = excluded.final_score,
    baseline_enc  = excluded.baseline_enc,
    baseline_hash = excluded.baseline_hash,
    calculated_at = excluded.calculated_at,
    updated_at    = excluded.updated_at
"""


class ScoreHistoryStore:
    """Persistence for recovery and sleep scores.

    Usage::

        db = HealthDatabase(":memory:")
        db.initialize()
        store = ScoreHistoryStore(db, FieldEncryptor(key))
        store.migrate_legacy("~/.vitalscore/score_history.json")

        store.upsert(PersistedScore("2026-03-14", ScoreType.RECOVERY, 78, snapshot))
        week = store.get_range("2026-03-08", "2026-03-14", ScoreType.RECOVERY)
    """

    def __init__(
        self,
        database: HealthDatabase,
        encryptor: FieldEncryptor,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._db = database
        self._enc = encryptor
        self._audit = audit_logger

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(timezone.utc).isoformat()

    def _rollback(self) -> None:
        try:
            self._db.connection.rollback()
        except sqlite3.Error:
            logger.exception("Rollback failed")

    def _row_to_score(self, row: sqlite3.Row) -> PersistedScore:
        return PersistedScore(
            date=row["score_date"],
            score_type=ScoreType(row["score_type"]),
            final_score=row["final_score"],
            baseline_snapshot=self._enc.decrypt(row["baseline_enc"]) or {},
            calculated_at=row["calculated_at"],
        )

    def _write(self, conn: sqlite3.Connection, score: PersistedScore) -> None:
        conn.execute(
            _UPSERT_SQL,
            (
                str(uuid.uuid4()),
                day_key(score.date),
                score.score_type.value,
                int(score.final_score),
                self._enc.encrypt(score.baseline_snapshot),
                hash_canonical(score.baseline_snapshot),
                score.calculated_at or self._now_iso(),
                self._now_iso(),
            ),
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @_retry_once
    def _upsert(self, score: PersistedScore) -> None:
        conn = self._db.connection
        self._write(conn, score)
        conn.commit()

    def upsert(self, score: PersistedScore, *, tool_name: str = "") -> None:
        """Insert or replace the score for ``(score.date, score.score_type)``.

        Raises:
            PersistenceError: If the write fails twice.
        """
        self._upsert(score)
        logger.info(
            "Saved %s score %d for %s", score.score_type.value, score.final_score, score.date
        )
        if self._audit is not None:
            self._audit.log_score_upsert(
                score_type=score.score_type.value,
                score_date=day_key(score.date),
                baseline_snapshot=score.baseline_snapshot,
                tool_name=tool_name,
            )

    @_retry_once
    def _delete(self, key: str, score_type: ScoreType) -> int:
        conn = self._db.connection
        cursor = conn.execute(
            "DELETE FROM score_history WHERE score_date = ? AND score_type = ?",
            (key, score_type.value),
        )
        conn.commit()
        return cursor.rowcount

    def delete(
        self,
        day: date | datetime | str,
        score_type: ScoreType,
        *,
        tool_name: str = "",
    ) -> bool:
        """Delete one score. Returns True if a row was removed."""
        key = day_key(day)
        removed = self._delete(key, score_type) > 0
        if removed:
            logger.info("Deleted %s score for %s", score_type.value, key)
            if self._audit is not None:
                self._audit.log_score_delete(
                    tool_name=tool_name,
                    score_type=score_type.value,
                    score_date=key,
                    count=1,
                )
        return removed

    @_retry_once
    def _purge(self, cutoff: str) -> int:
        conn = self._db.connection
        cursor = conn.execute(
            "DELETE FROM score_history WHERE score_date < ?", (cutoff,)
        )
        conn.commit()
        return cursor.rowcount

    def purge_before(self, day: date | datetime | str, *, tool_name: str = "") -> int:
        """Delete every score dated strictly before ``day``.

        Returns:
            Number of rows removed.
        """
        cutoff = day_key(day)
        count = self._purge(cutoff)
        if count:
            logger.info("Purged %d scores dated before %s", count, cutoff)
            if self._audit is not None:
                self._audit.log_score_delete(
                    tool_name=tool_name,
                    count=count,
                    action="retention_purge",
                    metadata={"before": cutoff},
                )
        return count

    def purge_before_days(self, days: int, *, tool_name: str = "") -> int:
        """Retention cleanup: delete scores older than ``days`` days."""
        cutoff = date.today() - timedelta(days=days)
        return self.purge_before(cutoff, tool_name=tool_name)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @_retry_once
    def get(self, day: date | datetime | str, score_type: ScoreType) -> PersistedScore | None:
        """Return the stored score for a day, or None."""
        row = self._db.connection.execute(
            "SELECT * FROM score_history WHERE score_date = ? AND score_type = ?",
            (day_key(day), score_type.value),
        ).fetchone()
        return self._row_to_score(row) if row else None

    @_retry_once
    def get_range(
        self,
        start: date | datetime | str,
        end: date | datetime | str,
        score_type: ScoreType,
    ) -> list[PersistedScore]:
        """Return scores with ``start <= date <= end``, oldest first."""
        rows = self._db.connection.execute(
            """SELECT * FROM score_history
               WHERE score_type = ? AND score_date >= ? AND score_date <= ?
               ORDER BY score_date ASC""",
            (score_type.value, day_key(start), day_key(end)),
        ).fetchall()
        return [self._row_to_score(r) for r in rows]

    @_retry_once
    def all_entries(self, score_type: ScoreType | None = None) -> list[PersistedScore]:
        """Return every stored score, newest first."""
        if score_type is None:
            rows = self._db.connection.execute(
                "SELECT * FROM score_history ORDER BY score_date DESC, score_type ASC"
            ).fetchall()
        else:
            rows = self._db.connection.execute(
                "SELECT * FROM score_history WHERE score_type = ? ORDER BY score_date DESC",
                (score_type.value,),
            ).fetchall()
        return [self._row_to_score(r) for r in rows]

    @_retry_once
    def count(self, score_type: ScoreType | None = None) -> int:
        if score_type is None:
            row = self._db.connection.execute("SELECT COUNT(*) FROM score_history").fetchone()
        else:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM score_history WHERE score_type = ?",
                (score_type.value,),
            ).fetchone()
        return row[0]

    # ------------------------------------------------------------------
    # Legacy migration
    # ------------------------------------------------------------------

    def migration_applied(self, name: str = LEGACY_MIGRATION_NAME) -> bool:
        row = self._db.connection.execute(
            "SELECT 1 FROM data_migrations WHERE name = ?", (name,)
        ).fetchone()
        return row is not None

    def migrate_legacy(self, path: str | Path) -> int:
        """Import the legacy flat-file history exactly once.

        Runs only when the migration has never been recorded, the store is
        empty and the file exists. Every usable entry is imported in one
        transaction together with the migration record, then the file is
        renamed to ``<name>.migrated``. A corrupt file is logged and
        skipped; this method never raises for bad legacy data.

        Returns:
            Number of scores imported.
        """
        legacy_path = Path(path).expanduser()
        if self.migration_applied():
            return 0
        if not legacy_path.exists():
            return 0
        if self.count() > 0:
            logger.info("Score history already populated; legacy file %s ignored", legacy_path)
            return 0

        try:
            scores, skipped = read_legacy_history(legacy_path)
        except MigrationError as exc:
            logger.warning("Skipping legacy score history import: %s", exc)
            if self._audit is not None:
                self._audit.log_migration(
                    imported=0, skipped=0, status="skipped", error_type="MigrationError"
                )
            return 0

        conn = self._db.connection
        try:
            with conn:
                for score in scores:
                    self._write(conn, score)
                conn.execute(
                    "INSERT INTO data_migrations (name, records, source) VALUES (?, ?, ?)",
                    (LEGACY_MIGRATION_NAME, len(scores), str(legacy_path)),
                )
        except sqlite3.Error as exc:
            logger.error("Legacy score history import rolled back: %s", exc)
            if self._audit is not None:
                self._audit.log_migration(
                    imported=0,
                    skipped=len(scores) + skipped,
                    status="failure",
                    error_type=type(exc).__name__,
                )
            return 0

        migrated_path = legacy_path.with_name(legacy_path.name + ".migrated")
        try:
            legacy_path.rename(migrated_path)
        except OSError as exc:
            logger.warning("Could not rename migrated legacy file %s: %s", legacy_path, exc)

        logger.info(
            "Imported %d legacy scores from %s (%d skipped)",
            len(scores),
            legacy_path,
            skipped,
        )
        if self._audit is not None:
            self._audit.log_migration(imported=len(scores), skipped=skipped)
        return len(scores)
