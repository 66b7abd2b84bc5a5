"""Tests for the component normalization curves."""

from __future__ import annotations

import math

import pytest

from vitalscore.domains.health.domain_logic.scorers import (
    bedtime_consistency_score,
    clamp,
    deviation_stress_score,
    gaussian_score,
    onset_latency_score,
    range_normalize_score,
    ratio_score,
    step_then_range_score,
)

HOUR = 3600


class TestClamp:
    def test_within_range_unchanged(self):
        assert clamp(42.0) == 42.0

    def test_bounds(self):
        assert clamp(-5) == 0.0
        assert clamp(140) == 100.0

    def test_nan_maps_to_low(self):
        assert clamp(float("nan")) == 0.0


class TestGaussian:
    def test_optimum_scores_100(self):
        assert gaussian_score(55, 55, 15) == 100.0

    def test_ten_below_baseline(self):
        # 100 * exp(-0.5 * (10/15)^2)
        assert gaussian_score(45, 55, 15) == pytest.approx(80.07, abs=0.01)

    def test_symmetric(self):
        assert gaussian_score(65, 55, 15) == pytest.approx(gaussian_score(45, 55, 15))

    def test_decays_toward_zero(self):
        assert gaussian_score(0, 55, 15) < 1.0
        assert gaussian_score(0, 55, 15) >= 0.0

    def test_zero_sigma(self):
        assert gaussian_score(5, 5, 0) == 100.0
        assert gaussian_score(6, 5, 0) == 0.0


class TestRangeNormalize:
    def test_midpoint_scores_100(self):
        assert range_normalize_score(18, 13, 23) == 100.0

    def test_edges_score_60(self):
        assert range_normalize_score(13, 13, 23) == pytest.approx(60.0)
        assert range_normalize_score(23, 13, 23) == pytest.approx(60.0)

    def test_below_band_quadratic(self):
        # 60 * (10/13)^2
        assert range_normalize_score(10, 13, 23) == pytest.approx(35.5, abs=0.01)

    def test_above_band_linear_with_floor(self):
        assert range_normalize_score(28, 13, 23) == pytest.approx(85.0)
        assert range_normalize_score(50, 13, 23) == 60.0

    def test_negative_input_clamped(self):
        assert range_normalize_score(-4, 13, 23) == 0.0


class TestStepThenRange:
    def test_threshold_met_scores_100(self):
        assert step_then_range_score(125, 15, 120, 20, 25) == 100.0

    def test_below_threshold_uses_band(self):
        assert step_then_range_score(90, 22.5, 120, 20, 25) == 100.0
        assert step_then_range_score(90, 10, 120, 20, 25) == pytest.approx(15.0)


class TestOnsetLatency:
    @pytest.mark.parametrize("minutes", [0, 5, 10])
    def test_fast_onset_scores_100(self, minutes):
        assert onset_latency_score(minutes) == 100.0

    def test_exponential_decay(self):
        assert onset_latency_score(35) == pytest.approx(100 * math.exp(-1))

    def test_value_at_max(self):
        assert onset_latency_score(60) == pytest.approx(100 * math.exp(-2))

    def test_linear_penalty_past_max(self):
        assert onset_latency_score(80) == pytest.approx(100 * math.exp(-2) - 10)
        assert onset_latency_score(200) == 0.0

    def test_monotonic(self):
        scores = [onset_latency_score(m) for m in range(0, 120, 5)]
        assert scores == sorted(scores, reverse=True)


class TestRatio:
    def test_at_baseline(self):
        assert ratio_score(58, 58) == 100.0

    def test_elevated_reading(self):
        assert ratio_score(58, 70) == pytest.approx(100 * 58 / 70)

    def test_better_than_baseline_capped(self):
        assert ratio_score(58, 50) == 100.0

    def test_floor(self):
        assert ratio_score(50, 150) == 50.0

    def test_invalid_inputs_score_floor(self):
        assert ratio_score(58, 0) == 50.0
        assert ratio_score(0, 58) == 50.0


class TestBedtimeConsistency:
    TARGET = 23 * HOUR + 45 * 60

    def test_early_is_on_time(self):
        assert bedtime_consistency_score(22 * HOUR + 30 * 60, self.TARGET) == 100.0

    def test_late_loses_a_point_per_minute(self):
        assert bedtime_consistency_score(23 * HOUR + 55 * 60, self.TARGET) == pytest.approx(90.0)

    def test_after_midnight_wraps(self):
        assert bedtime_consistency_score(15 * 60, self.TARGET) == pytest.approx(70.0)

    def test_very_late_floors_at_zero(self):
        assert bedtime_consistency_score(4 * HOUR, self.TARGET) == 0.0


class TestDeviationStress:
    def test_matching_baseline(self):
        assert deviation_stress_score([(14.0, 14.0), (95.0, 95.0)]) == 100.0

    def test_mean_percent_deviation(self):
        # 10% and 0% -> mean 5%
        assert deviation_stress_score([(15.4, 14.0), (95.0, 95.0)]) == pytest.approx(95.0)

    def test_missing_pairs_ignored(self):
        assert deviation_stress_score([(15.4, 14.0), (None, 95.0), (97.0, None)]) == pytest.approx(90.0)

    def test_no_valid_pairs(self):
        assert deviation_stress_score([]) is None
        assert deviation_stress_score([(14.0, 0.0), (None, None)]) is None

    def test_floors_at_zero(self):
        assert deviation_stress_score([(50.0, 10.0)]) == 0.0
