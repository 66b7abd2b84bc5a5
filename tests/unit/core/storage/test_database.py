"""Tests for HealthDatabase: schema creation, versioning, lifecycle."""

from __future__ import annotations

import sqlite3

import pytest

from vitalscore.core.storage.database import SCHEMA_VERSION, DatabaseError, HealthDatabase


class TestInitialization:
    def test_in_memory_initialize(self):
        db = HealthDatabase(":memory:")
        db.initialize()
        assert db.is_initialized
        assert db.connection is not None
        db.close()

    def test_double_initialize_is_idempotent(self):
        db = HealthDatabase(":memory:")
        db.initialize()
        conn1 = db.connection
        db.initialize()
        assert db.connection is conn1
        db.close()

    def test_connection_before_init_raises(self):
        db = HealthDatabase(":memory:")
        with pytest.raises(DatabaseError, match="not initialized"):
            _ = db.connection

    def test_context_manager(self):
        with HealthDatabase(":memory:") as db:
            assert db.connection is not None
        with pytest.raises(DatabaseError):
            _ = db.connection

    def test_file_database_creates_parent_dirs(self, tmp_path):
        db_file = tmp_path / "nested" / "dir" / "scores.db"
        with HealthDatabase(str(db_file)) as db:
            assert db.path == str(db_file)
        assert db_file.exists()


class TestSchema:
    def test_schema_version_recorded(self):
        with HealthDatabase(":memory:") as db:
            assert db.get_schema_version() == SCHEMA_VERSION

    def test_tables_created(self):
        with HealthDatabase(":memory:") as db:
            tables = db.table_names()
        for t in ("score_history", "data_migrations", "schema_version", "audit_log"):
            assert t in tables, f"Missing table: {t}"

    def test_indexes_created(self):
        with HealthDatabase(":memory:") as db:
            rows = db.connection.execute(
                "SELECT name FROM sqlite_master WHERE type='index'"
            ).fetchall()
            indexes = {r[0] for r in rows}
        for idx in ("idx_scores_date", "idx_scores_type", "idx_audit_timestamp"):
            assert idx in indexes

    def test_unique_day_and_type(self):
        with HealthDatabase(":memory:") as db:
            conn = db.connection
            insert = (
                "INSERT INTO score_history (id, score_date, score_type, final_score, calculated_at) "
                "VALUES (?, ?, ?, ?, ?)"
            )
            conn.execute(insert, ("a", "2026-03-14", "recovery", 80, "2026-03-14T08:00:00"))
            conn.execute(insert, ("b", "2026-03-14", "sleep", 75, "2026-03-14T08:00:00"))
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute(insert, ("c", "2026-03-14", "recovery", 60, "2026-03-14T09:00:00"))

    def test_reopen_keeps_single_version_row(self, tmp_path):
        db_file = str(tmp_path / "scores.db")
        with HealthDatabase(db_file):
            pass
        with HealthDatabase(db_file) as db:
            rows = db.connection.execute("SELECT COUNT(*) FROM schema_version").fetchone()
            assert rows[0] == 1
            assert db.get_schema_version() == SCHEMA_VERSION
