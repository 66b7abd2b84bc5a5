"""Tests for ScoreHistoryStore: idempotent upserts, encrypted snapshots, retry."""

from __future__ import annotations

import json
import sqlite3
from datetime import date, timedelta

import pytest

from vitalscore.core.audit.logger import hash_canonical
from vitalscore.core.storage.models import PersistedScore, ScoreType
from vitalscore.core.storage.score_history import PersistenceError


def _snapshot(hrv: float = 52.0) -> dict:
    return {
        "date": "2026-03-14",
        "lookback_days": 60,
        "values": {"hrv": hrv, "rhr": 58.0},
        "sample_counts": {"hrv": 60, "rhr": 60},
        "calculated_at": "2026-03-14T07:00:00+00:00",
    }


def _score(day: str = "2026-03-14", kind: ScoreType = ScoreType.RECOVERY, value: int = 78,
           hrv: float = 52.0) -> PersistedScore:
    return PersistedScore(
        date=day,
        score_type=kind,
        final_score=value,
        baseline_snapshot=_snapshot(hrv),
        calculated_at="2026-03-14T07:00:00+00:00",
    )


class TestUpsert:
    def test_insert_and_get(self, score_store):
        score_store.upsert(_score())
        stored = score_store.get("2026-03-14", ScoreType.RECOVERY)
        assert stored is not None
        assert stored.final_score == 78
        assert stored.baseline_snapshot == _snapshot()
        assert stored.calculated_at == "2026-03-14T07:00:00+00:00"

    def test_same_key_twice_keeps_one_row(self, score_store):
        score_store.upsert(_score(value=70, hrv=50.0))
        score_store.upsert(_score(value=82, hrv=55.0))

        assert score_store.count() == 1
        stored = score_store.get(date(2026, 3, 14), ScoreType.RECOVERY)
        assert stored.final_score == 82
        assert stored.baseline_snapshot["values"]["hrv"] == 55.0

    def test_score_types_are_separate_rows(self, score_store):
        score_store.upsert(_score(kind=ScoreType.RECOVERY, value=80))
        score_store.upsert(_score(kind=ScoreType.SLEEP, value=65))
        assert score_store.count() == 2
        assert score_store.count(ScoreType.SLEEP) == 1
        assert score_store.get("2026-03-14", ScoreType.SLEEP).final_score == 65

    def test_missing_returns_none(self, score_store):
        assert score_store.get("2026-01-01", ScoreType.RECOVERY) is None

    def test_snapshot_encrypted_at_rest(self, score_store, health_db):
        score_store.upsert(_score(hrv=52.75))
        row = health_db.connection.execute(
            "SELECT final_score, baseline_enc, baseline_hash FROM score_history"
        ).fetchone()
        assert row["final_score"] == 78
        assert "52.75" not in row["baseline_enc"]
        assert row["baseline_hash"] == hash_canonical(_snapshot(52.75))

    def test_upsert_is_audited(self, score_store, audit_logger):
        score_store.upsert(_score(), tool_name="save_scores")
        events = audit_logger.get_events(action="score_upsert")
        assert len(events) == 1
        assert events[0]["tool_name"] == "save_scores"
        assert events[0]["score_date"] == "2026-03-14"
        assert events[0]["score_type"] == "recovery"
        assert events[0]["baseline_hash"] == hash_canonical(_snapshot())


class TestQueries:
    def test_get_range_inclusive_oldest_first(self, score_store):
        for offset, value in enumerate([60, 70, 80, 90]):
            day = (date(2026, 3, 10) + timedelta(days=offset)).isoformat()
            score_store.upsert(_score(day=day, value=value))
        score_store.upsert(_score(day="2026-03-11", kind=ScoreType.SLEEP, value=10))

        scores = score_store.get_range("2026-03-11", "2026-03-13", ScoreType.RECOVERY)
        assert [s.date for s in scores] == ["2026-03-11", "2026-03-12", "2026-03-13"]
        assert [s.final_score for s in scores] == [70, 80, 90]

    def test_all_entries_newest_first(self, score_store):
        score_store.upsert(_score(day="2026-03-01"))
        score_store.upsert(_score(day="2026-03-05"))
        score_store.upsert(_score(day="2026-03-03"))
        assert [s.date for s in score_store.all_entries()] == [
            "2026-03-05", "2026-03-03", "2026-03-01",
        ]

    def test_all_entries_filtered_by_type(self, score_store):
        score_store.upsert(_score(kind=ScoreType.RECOVERY))
        score_store.upsert(_score(kind=ScoreType.SLEEP))
        entries = score_store.all_entries(ScoreType.SLEEP)
        assert len(entries) == 1
        assert entries[0].score_type is ScoreType.SLEEP


class TestDeletion:
    def test_delete_existing(self, score_store, audit_logger):
        score_store.upsert(_score())
        assert score_store.delete("2026-03-14", ScoreType.RECOVERY, tool_name="delete_score")
        assert score_store.count() == 0

        events = audit_logger.get_events(action="score_delete")
        assert len(events) == 1
        assert json.loads(events[0]["metadata_json"])["records_deleted"] == 1

    def test_delete_missing_returns_false(self, score_store, audit_logger):
        assert not score_store.delete("2026-03-14", ScoreType.SLEEP)
        assert audit_logger.count_events(action="score_delete") == 0

    def test_purge_before_is_strict(self, score_store, audit_logger):
        for day in ("2026-01-01", "2026-02-01", "2026-03-01"):
            score_store.upsert(_score(day=day))
        removed = score_store.purge_before("2026-02-01")
        assert removed == 1
        assert [s.date for s in score_store.all_entries()] == ["2026-03-01", "2026-02-01"]
        assert audit_logger.count_events(action="retention_purge") == 1

    def test_purge_before_days(self, score_store):
        old = (date.today() - timedelta(days=400)).isoformat()
        recent = (date.today() - timedelta(days=2)).isoformat()
        score_store.upsert(_score(day=old))
        score_store.upsert(_score(day=recent))
        assert score_store.purge_before_days(365) == 1
        assert score_store.get(recent, ScoreType.RECOVERY) is not None


class TestRetry:
    def test_transient_failure_retried_once(self, score_store):
        real_write = score_store._write
        calls = {"n": 0}

        def flaky(conn, score):
            calls["n"] += 1
            if calls["n"] == 1:
                raise sqlite3.OperationalError("database is locked")
            return real_write(conn, score)

        score_store._write = flaky
        score_store.upsert(_score())

        assert calls["n"] == 2
        assert score_store.count() == 1

    def test_persistent_failure_raises(self, score_store, audit_logger):
        calls = {"n": 0}

        def broken(conn, score):
            calls["n"] += 1
            raise sqlite3.OperationalError("disk I/O error")

        score_store._write = broken
        with pytest.raises(PersistenceError, match="failed after retry"):
            score_store.upsert(_score())

        assert calls["n"] == 2
        assert audit_logger.count_events(action="score_upsert") == 0

    def test_store_usable_after_failure(self, score_store):
        real_write = score_store._write

        def broken(conn, score):
            raise sqlite3.OperationalError("disk I/O error")

        score_store._write = broken
        with pytest.raises(PersistenceError):
            score_store.upsert(_score())

        score_store._write = real_write
        score_store.upsert(_score())
        assert score_store.count() == 1
