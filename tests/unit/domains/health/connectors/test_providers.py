"""Tests for the mock and static metrics sources."""

from __future__ import annotations

import asyncio
import json
from datetime import date, timedelta

from conftest import make_metrics
from vitalscore.domains.health.connectors import MetricsSource
from vitalscore.domains.health.connectors.mock_data import get_mock_daily_metrics
from vitalscore.domains.health.connectors.providers import MockMetricsSource, StaticMetricsSource
from vitalscore.domains.health.domain_logic.models import Biomarker

DAY = date(2026, 3, 14)


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class TestMockData:
    def test_deterministic_per_day(self):
        assert get_mock_daily_metrics(DAY) == get_mock_daily_metrics(DAY)

    def test_days_differ(self):
        assert get_mock_daily_metrics(DAY) != get_mock_daily_metrics(DAY - timedelta(days=1))

    def test_plausible_ranges(self):
        for offset in range(30):
            metrics = get_mock_daily_metrics(DAY - timedelta(days=offset))
            assert 30 <= metrics.hrv <= 70
            assert 50 <= metrics.rhr <= 70
            assert 90 <= metrics.oxygen_saturation <= 100
            assert metrics.time_in_bed > metrics.sleep_duration
            assert metrics.deep_sleep + metrics.rem_sleep < metrics.sleep_duration
            assert metrics.has_recovery_data and metrics.has_sleep_data


class TestMockMetricsSource:
    def test_fetch(self):
        source = MockMetricsSource()
        assert _run(source.fetch(DAY)) == get_mock_daily_metrics(DAY)

    def test_missing_days(self):
        source = MockMetricsSource(missing_days=[DAY])
        assert _run(source.fetch(DAY)) is None
        assert _run(source.fetch_series(Biomarker.HRV, DAY)) is None

    def test_series_matches_daily_value(self):
        source = MockMetricsSource()
        expected = get_mock_daily_metrics(DAY).value(Biomarker.SLEEP_DURATION)
        assert _run(source.fetch_series(Biomarker.SLEEP_DURATION, DAY)) == expected

    def test_never_reports_connected(self):
        source = MockMetricsSource()
        assert not source.is_connected()
        assert source.data_source == "mock"
        assert isinstance(source, MetricsSource)


class TestStaticMetricsSource:
    def test_serves_given_days(self):
        source = StaticMetricsSource([make_metrics(DAY), make_metrics(DAY - timedelta(days=2))])
        assert _run(source.fetch(DAY)).hrv == 55.0
        assert _run(source.fetch(DAY - timedelta(days=1))) is None
        assert source.days() == [DAY - timedelta(days=2), DAY]
        assert source.is_connected()

    def test_empty_not_connected(self):
        assert not StaticMetricsSource([]).is_connected()

    def test_from_json(self, tmp_path):
        path = tmp_path / "metrics.json"
        path.write_text(json.dumps([make_metrics(DAY).to_dict()]), encoding="utf-8")
        source = StaticMetricsSource.from_json(path)
        assert source.data_source == "json"
        assert _run(source.fetch(DAY)) == make_metrics(DAY)

    def test_time_of_day_series(self):
        source = StaticMetricsSource([make_metrics(DAY)])
        assert _run(source.fetch_series(Biomarker.BEDTIME, DAY)) == 22.5 * 3600
