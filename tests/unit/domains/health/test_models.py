"""Tests for the scoring data models and day keys."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from conftest import make_metrics
from vitalscore.core.storage.models import PersistedScore, ScoreType, day_key
from vitalscore.domains.health.domain_logic.models import (
    BaselineSnapshot,
    Biomarker,
    CacheEntry,
    ComponentScore,
    DailyMetrics,
    seconds_from_midnight,
)

DAY = date(2026, 3, 14)


class TestDayKey:
    def test_date(self):
        assert day_key(DAY) == "2026-03-14"

    def test_string_with_time(self):
        assert day_key("2026-03-14T23:59:00") == "2026-03-14"

    def test_naive_datetime(self):
        assert day_key(datetime(2026, 3, 14, 23, 59)) == "2026-03-14"

    def test_aware_datetime_uses_local_day(self):
        moment = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)
        assert day_key(moment) == moment.astimezone().date().isoformat()

    def test_invalid_string(self):
        with pytest.raises(ValueError):
            day_key("14/03/2026")


class TestDailyMetrics:
    def test_derived_sleep_values(self):
        metrics = make_metrics(DAY, sleep_duration=6 * 3600.0, time_in_bed=6.5 * 3600.0)
        assert metrics.sleep_efficiency == pytest.approx(6 / 6.5 * 100)
        assert metrics.sleep_latency == pytest.approx(30.0)

    def test_latency_never_negative(self):
        metrics = make_metrics(DAY, sleep_duration=7 * 3600.0, time_in_bed=6 * 3600.0)
        assert metrics.sleep_latency == 0.0

    def test_empty_day(self):
        metrics = DailyMetrics(date=DAY)
        assert not metrics.has_recovery_data
        assert not metrics.has_sleep_data
        assert metrics.sleep_efficiency is None
        assert metrics.sleep_latency is None
        assert metrics.value(Biomarker.BEDTIME) is None

    def test_value_lookup(self):
        metrics = make_metrics(DAY)
        assert metrics.value(Biomarker.HRV) == 55.0
        assert metrics.value(Biomarker.BEDTIME) == 22.5 * 3600
        assert metrics.value(Biomarker.SLEEP_EFFICIENCY) == metrics.sleep_efficiency

    def test_dict_round_trip(self):
        metrics = make_metrics(DAY)
        assert DailyMetrics.from_dict(metrics.to_dict()) == metrics

    def test_seconds_from_midnight(self):
        assert seconds_from_midnight(datetime(2026, 3, 14, 1, 2, 3)) == 3723.0


class TestBaselineSnapshot:
    def test_calibrating(self):
        snapshot = BaselineSnapshot(date=DAY, lookback_days=60, values={Biomarker.HRV: 50.0})
        assert snapshot.calibrating
        assert snapshot.get(Biomarker.RHR) is None

    def test_dict_round_trip(self):
        snapshot = BaselineSnapshot(
            date=DAY,
            lookback_days=60,
            values={Biomarker.HRV: 50.0, Biomarker.RHR: 58.0, Biomarker.BEDTIME: None},
            sample_counts={Biomarker.HRV: 60, Biomarker.RHR: 59, Biomarker.BEDTIME: 1},
            windows={Biomarker.HRV: 60, Biomarker.RHR: 60, Biomarker.BEDTIME: 14},
            calculated_at=datetime(2026, 3, 14, 7, tzinfo=timezone.utc),
        )
        assert BaselineSnapshot.from_dict(snapshot.to_dict()) == snapshot
        assert not snapshot.calibrating

    def test_reads_persisted_snapshot(self):
        stored = PersistedScore(
            "2026-03-14", ScoreType.RECOVERY, 80,
            {"date": "2026-03-14", "lookback_days": 60, "values": {"hrv": 51.5}},
        )
        restored = BaselineSnapshot.from_dict(stored.baseline_snapshot)
        assert restored.get(Biomarker.HRV) == 51.5
        assert restored.windows == {}


class TestScores:
    def test_component_points(self):
        component = ComponentScore(name="HRV", raw_value=45.0, sub_score=80.0, max_points=50)
        assert component.points == 40.0
        assert component.to_dict()["points"] == 40.0

    def test_cache_entry_serializes(self):
        baseline = BaselineSnapshot(date=DAY, lookback_days=60, values={})
        entry = CacheEntry(
            date=DAY,
            raw_data=None,
            baseline=baseline,
            recovery=None,
            sleep=None,
            trends={},
            timestamp=datetime(2026, 3, 14, 8, tzinfo=timezone.utc),
        )
        data = entry.to_dict()
        assert data["date"] == "2026-03-14"
        assert data["calibrating"] is True
        assert data["recovery"] is None
        assert entry.result(ScoreType.SLEEP) is None

    def test_persisted_score_dict(self):
        score = PersistedScore("2026-03-14", ScoreType.SLEEP, 77, calculated_at="2026-03-14T08:00:00")
        assert score.to_dict()["score_type"] == "sleep"
        assert score.to_dict()["baseline_snapshot"] == {}


def test_biomarker_units():
    assert Biomarker.HRV.unit == "ms"
    assert Biomarker.BEDTIME.is_time_of_day
    assert not (Biomarker.RHR.is_time_of_day)
    assert all(b.unit for b in Biomarker)
    assert make_metrics(DAY - timedelta(days=1)).date == date(2026, 3, 13)
