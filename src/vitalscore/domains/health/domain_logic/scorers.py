"""Component scorers: pure normalization curves onto a 0-100 scale.

Every scorer is deterministic, does no I/O, and clamps out-of-domain
input (negative durations, zero baselines) instead of raising. The
constants in the calculators encode calibration; the curves here are
shared by both composite scores.
"""

from __future__ import annotations

import math
from collections.abc import Iterable

MINUTES_PER_DAY = 1440


def clamp(value: float, lo: float = 0.0, hi: float = 100.0) -> float:
    """Clamp ``value`` to ``[lo, hi]``; NaN maps to ``lo``."""
    if math.isnan(value):
        return lo
    return max(lo, min(hi, value))


def gaussian_score(observed: float, optimal: float, sigma: float) -> float:
    """Bell curve around ``optimal``: ``100 * exp(-0.5 * (deviation / sigma)^2)``.

    100 at the optimum, decaying smoothly and symmetrically toward 0.
    """
    deviation = abs(observed - optimal)
    if sigma <= 0:
        return 100.0 if deviation == 0 else 0.0
    return clamp(100 * math.exp(-0.5 * (deviation / sigma) ** 2))


def range_normalize_score(value: float, low: float, high: float) -> float:
    """Score against an ideal band ``[low, high]``.

    Three regimes:
      * below the band: ``60 * (value / low)^2``
      * above the band: ``max(60, 100 - excess * 3)``
      * inside the band: ``100 - ((value - mid) / half_width)^2 * 40``

    The band midpoint always scores 100; the band edges score 60.
    """
    value = max(0.0, value)
    if value < low:
        if low <= 0:
            return 0.0
        return clamp(60 * (value / low) ** 2)
    if value > high:
        return clamp(max(60.0, 100 - (value - high) * 3))
    mid = (low + high) / 2
    half_width = (high - low) / 2
    if half_width == 0:
        return 100.0
    return clamp(100 - ((value - mid) / half_width) ** 2 * 40)


def step_then_range_score(
    amount: float,
    percent: float,
    threshold: float,
    low: float,
    high: float,
) -> float:
    """100 once ``amount`` reaches ``threshold``, else range-normalize ``percent``."""
    if amount >= threshold:
        return 100.0
    return range_normalize_score(percent, low, high)


def onset_latency_score(
    minutes: float,
    *,
    fast: float = 10.0,
    max_minutes: float = 60.0,
    k: float = 2.0,
    penalty_per_minute: float = 0.5,
) -> float:
    """Exponential decay on time taken to fall asleep.

    ``minutes <= fast`` scores 100. Up to ``max_minutes`` the score decays
    as ``100 * exp(-k * (t - fast) / (max_minutes - fast))``. Past that it
    loses ``penalty_per_minute`` per extra minute from the value at
    ``max_minutes``, down to 0.
    """
    minutes = max(0.0, minutes)
    if minutes <= fast:
        return 100.0
    span = max_minutes - fast
    if span <= 0:
        return 0.0
    if minutes <= max_minutes:
        return clamp(100 * math.exp(-k * (minutes - fast) / span))
    floor = 100 * math.exp(-k)
    return clamp(floor - (minutes - max_minutes) * penalty_per_minute)


def ratio_score(
    baseline: float,
    observed: float,
    *,
    floor: float = 50.0,
    ceiling: float = 100.0,
) -> float:
    """``100 * baseline / observed`` clamped to ``[floor, ceiling]``.

    Suits "lower is better" readings such as resting heart rate.
    """
    if observed <= 0 or baseline <= 0:
        return floor
    return clamp(100 * baseline / observed, floor, ceiling)


def bedtime_consistency_score(
    bedtime_seconds: float,
    target_seconds: float,
    *,
    penalty_per_minute: float = 1.0,
) -> float:
    """100 at or before the target bedtime, minus a point per minute late.

    Bedtimes after midnight (before noon) count as late relative to an
    evening target; other early bedtimes are on time.
    """
    actual = (bedtime_seconds % 86_400) / 60
    target = (target_seconds % 86_400) / 60

    if actual >= target:
        late = actual - target
    elif actual < 12 * 60 <= target:
        late = (MINUTES_PER_DAY - target) + actual
    else:
        late = 0.0
    return clamp(100 - late * penalty_per_minute)


def deviation_stress_score(pairs: Iterable[tuple[float | None, float | None]]) -> float | None:
    """``100 - mean(|observed - baseline| / baseline * 100)`` over valid pairs.

    Returns None when no pair has both an observation and a positive baseline.
    """
    deviations = [
        abs(observed - baseline) / baseline * 100
        for observed, baseline in pairs
        if observed is not None and baseline is not None and baseline > 0
    ]
    if not deviations:
        return None
    return clamp(100 - sum(deviations) / len(deviations))
