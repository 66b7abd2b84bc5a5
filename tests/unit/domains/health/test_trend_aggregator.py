"""Tests for TrendAggregator: short-term per-biomarker series."""

from __future__ import annotations

import asyncio
from datetime import date, timedelta

import pytest

from conftest import CountingMetricsSource, make_history, make_metrics
from vitalscore.domains.health.domain_logic.models import Biomarker
from vitalscore.domains.health.domain_logic.trend_aggregator import (
    TREND_BIOMARKERS,
    TrendAggregator,
    percent_change,
    trend_direction,
)

DAY = date(2026, 3, 14)


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class TestPercentChange:
    def test_increase(self):
        assert percent_change(110.0, 100.0) == pytest.approx(10.0)

    def test_decrease(self):
        assert percent_change(45.0, 50.0) == pytest.approx(-10.0)

    def test_zero_previous_undefined(self):
        assert percent_change(50.0, 0.0) is None

    def test_missing_values(self):
        assert percent_change(None, 50.0) is None
        assert percent_change(50.0, None) is None


class TestTrendDirection:
    def test_up(self):
        assert trend_direction([40, 41, 40, 50, 52, 51]) == "up"

    def test_down(self):
        assert trend_direction([60, 61, 60, 50, 49, 50]) == "down"

    def test_flat(self):
        assert trend_direction([50, 51, 50, 50, 51, 50]) == "flat"

    def test_too_few_points(self):
        assert trend_direction([50, 0, 0, 0, 0, 60]) == "insufficient_data"


class TestTrends:
    def test_window_ends_on_target_oldest_first(self):
        history = [
            make_metrics(DAY - timedelta(days=offset), hrv=50.0 + (6 - offset))
            for offset in range(7)
        ]
        trends = _run(TrendAggregator(CountingMetricsSource(history)).trends(DAY, 7))
        hrv = trends[Biomarker.HRV]
        assert hrv.values == (50.0, 51.0, 52.0, 53.0, 54.0, 55.0, 56.0)
        assert hrv.current == 56.0
        assert hrv.percent_change == pytest.approx((56 - 55) / 55 * 100)
        assert hrv.direction == "up"
        assert hrv.unit == "ms"

    def test_every_trend_biomarker_present(self):
        trends = _run(TrendAggregator(CountingMetricsSource(make_history(DAY, 7))).trends(DAY, 7))
        assert set(trends) == set(TREND_BIOMARKERS)
        assert all(len(series.values) == 7 for series in trends.values())

    def test_missing_days_zero_filled(self):
        history = [m for m in make_history(DAY, 7) if m.date != DAY - timedelta(days=3)]
        trends = _run(TrendAggregator(CountingMetricsSource(history)).trends(DAY, 7))
        assert trends[Biomarker.RHR].values[3] == 0.0
        assert len(trends[Biomarker.RHR].values) == 7

    def test_zero_previous_gives_no_percent_change(self):
        history = [m for m in make_history(DAY, 7) if m.date != DAY - timedelta(days=1)]
        trends = _run(TrendAggregator(CountingMetricsSource(history)).trends(DAY, 7))
        assert trends[Biomarker.HRV].percent_change is None

    def test_durations_in_hours(self):
        trends = _run(TrendAggregator(CountingMetricsSource(make_history(DAY, 7))).trends(DAY, 7))
        sleep = trends[Biomarker.SLEEP_DURATION]
        assert sleep.unit == "h"
        assert sleep.current == pytest.approx(7.5)

    def test_efficiency_series(self):
        trends = _run(TrendAggregator(CountingMetricsSource(make_history(DAY, 7))).trends(DAY, 7))
        assert trends[Biomarker.SLEEP_EFFICIENCY].current == pytest.approx(27000 / 27600 * 100)

    def test_non_positive_days(self):
        aggregator = TrendAggregator(CountingMetricsSource(make_history(DAY, 7)))
        assert _run(aggregator.trends(DAY, 0)) == {}

    def test_fetches_only_window(self):
        source = CountingMetricsSource(make_history(DAY, 30))
        _run(TrendAggregator(source, biomarkers=[Biomarker.HRV]).trends(DAY, 7))
        days = sorted(day for _, day in source.series_calls)
        assert days == [DAY - timedelta(days=offset) for offset in range(6, -1, -1)]

    def test_serializes(self):
        trends = _run(TrendAggregator(CountingMetricsSource(make_history(DAY, 7))).trends(DAY, 7))
        data = trends[Biomarker.HRV].to_dict()
        assert data["biomarker"] == "hrv"
        assert data["values"] == [55.0] * 7
        assert data["percent_change"] == 0.0
        assert data["direction"] == "flat"
