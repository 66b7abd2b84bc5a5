"""Composite score calculators: Recovery and Sleep.

Each composite is a weighted sum of component sub-scores (0-100) whose
point allocations add up to 100. The final score is the sum of points,
clamped to [0, 100] and rounded half up. A day without the underlying
session data has no score (None), which callers show as an empty state.

The two scores are a closed set of tagged variants: ``calculate`` picks
the scoring function from the ``ScoreType`` passed in.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable
from datetime import date, datetime, timezone

from vitalscore.core.storage.models import ScoreType
from vitalscore.domains.health.domain_logic.models import (
    BaselineSnapshot,
    Biomarker,
    ComponentScore,
    CompositeScoreResult,
    DailyMetrics,
)
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

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Calibration constants
# ---------------------------------------------------------------------------

NEUTRAL_SUB_SCORE = 50.0

# Recovery allocation (points out of 100)
RECOVERY_HRV_POINTS = 50
RECOVERY_RHR_POINTS = 25
RECOVERY_SLEEP_POINTS = 15
RECOVERY_STRESS_POINTS = 10

HRV_SIGMA_MS = 15.0
RHR_RATIO_FLOOR = 50.0

# Sleep allocation (points out of 100)
SLEEP_DURATION_POINTS = 25
SLEEP_EFFICIENCY_POINTS = 15
SLEEP_DEEP_POINTS = 20
SLEEP_REM_POINTS = 20
SLEEP_QUALITY_POINTS = 10
SLEEP_TIMING_POINTS = 10

OPTIMAL_SLEEP_HOURS = 8.0
SLEEP_DURATION_SIGMA_HOURS = 1.5
DEEP_BAND_PCT = (13.0, 23.0)
REM_BAND_PCT = (20.0, 25.0)
REM_TARGET_MINUTES = 120.0
DEFAULT_TARGET_BEDTIME = 23 * 3600 + 45 * 60      # 23:45
REASONABLE_BEDTIME_WINDOW = (20 * 3600, 24 * 3600)  # baseline bedtime must fall in 20:00-23:59

# Component names
HRV = "HRV"
RESTING_HR = "Resting Heart Rate"
SLEEP_QUALITY = "Sleep Quality"
STRESS = "Stress"
DURATION = "Duration"
EFFICIENCY = "Efficiency"
DEEP_SLEEP = "Deep Sleep"
REM_SLEEP = "REM Sleep"
ONSET = "Sleep Onset"
TIMING = "Timing"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _finalize(components: list[ComponentScore]) -> int:
    return round_half_up(clamp(sum(c.points for c in components)))


def _neutral(name: str, max_points: float, raw: float | None, reason: str) -> ComponentScore:
    return ComponentScore(
        name=name,
        raw_value=raw,
        sub_score=NEUTRAL_SUB_SCORE,
        max_points=max_points,
        description=f"{reason}; scored neutral",
    )


# ---------------------------------------------------------------------------
# Sleep
# ---------------------------------------------------------------------------

def target_bedtime(baseline: BaselineSnapshot) -> float:
    """Baseline bedtime when it is a plausible evening time, else 23:45."""
    usual = baseline.get(Biomarker.BEDTIME)
    lo, hi = REASONABLE_BEDTIME_WINDOW
    if usual is not None and lo <= usual < hi:
        return usual
    return DEFAULT_TARGET_BEDTIME


def sleep_components(metrics: DailyMetrics, baseline: BaselineSnapshot) -> list[ComponentScore]:
    """Component breakdown of the Sleep score. Requires ``metrics.has_sleep_data``."""
    asleep = metrics.sleep_duration or 0.0
    hours = asleep / 3600
    components = [
        ComponentScore(
            name=DURATION,
            raw_value=hours,
            sub_score=gaussian_score(hours, OPTIMAL_SLEEP_HOURS, SLEEP_DURATION_SIGMA_HOURS),
            max_points=SLEEP_DURATION_POINTS,
            description=f"{hours:.1f}h asleep (optimal {OPTIMAL_SLEEP_HOURS:.0f}h)",
        ),
    ]

    efficiency = metrics.sleep_efficiency
    if efficiency is None:
        components.append(_neutral(EFFICIENCY, SLEEP_EFFICIENCY_POINTS, None, "No time in bed"))
    else:
        components.append(ComponentScore(
            name=EFFICIENCY,
            raw_value=efficiency,
            sub_score=clamp(efficiency),
            max_points=SLEEP_EFFICIENCY_POINTS,
            description=f"{efficiency:.0f}% of time in bed asleep",
        ))

    if metrics.deep_sleep is None or asleep <= 0:
        components.append(_neutral(DEEP_SLEEP, SLEEP_DEEP_POINTS, None, "No sleep stage data"))
    else:
        deep_pct = metrics.deep_sleep / asleep * 100
        components.append(ComponentScore(
            name=DEEP_SLEEP,
            raw_value=deep_pct,
            sub_score=range_normalize_score(deep_pct, *DEEP_BAND_PCT),
            max_points=SLEEP_DEEP_POINTS,
            description=f"{deep_pct:.0f}% deep (ideal {DEEP_BAND_PCT[0]:.0f}-{DEEP_BAND_PCT[1]:.0f}%)",
        ))

    if metrics.rem_sleep is None or asleep <= 0:
        components.append(_neutral(REM_SLEEP, SLEEP_REM_POINTS, None, "No sleep stage data"))
    else:
        rem_minutes = metrics.rem_sleep / 60
        rem_pct = metrics.rem_sleep / asleep * 100
        components.append(ComponentScore(
            name=REM_SLEEP,
            raw_value=rem_pct,
            sub_score=step_then_range_score(
                rem_minutes, rem_pct, REM_TARGET_MINUTES, *REM_BAND_PCT
            ),
            max_points=SLEEP_REM_POINTS,
            description=f"{rem_minutes:.0f} min REM ({rem_pct:.0f}%)",
        ))

    latency = metrics.sleep_latency
    if latency is None:
        components.append(_neutral(ONSET, SLEEP_QUALITY_POINTS, None, "No time in bed"))
    else:
        components.append(ComponentScore(
            name=ONSET,
            raw_value=latency,
            sub_score=onset_latency_score(latency),
            max_points=SLEEP_QUALITY_POINTS,
            description=f"{latency:.0f} min to fall asleep",
        ))

    bedtime = metrics.value(Biomarker.BEDTIME)
    if bedtime is None:
        components.append(_neutral(TIMING, SLEEP_TIMING_POINTS, None, "No bedtime recorded"))
    else:
        target = target_bedtime(baseline)
        components.append(ComponentScore(
            name=TIMING,
            raw_value=bedtime,
            sub_score=bedtime_consistency_score(bedtime, target),
            max_points=SLEEP_TIMING_POINTS,
            description=f"Bedtime {_clock(bedtime)} vs target {_clock(target)}",
        ))

    return components


def sleep_directive(score: int) -> str:
    if score >= 85:
        return "Excellent sleep quality. Your body is well-rested and ready for optimal performance."
    if score >= 70:
        return "Good sleep quality. Maintain your current sleep habits for continued improvement."
    if score >= 50:
        return "Fair sleep quality. Consider improving your sleep routine for better recovery."
    return "Poor sleep quality. Focus on sleep hygiene and consider adjusting your schedule."


def score_sleep(
    day: date,
    metrics: DailyMetrics | None,
    baseline: BaselineSnapshot,
) -> CompositeScoreResult | None:
    """Sleep score for the night that ended on ``day``."""
    if metrics is None or not metrics.has_sleep_data:
        return None
    components = sleep_components(metrics, baseline)
    final = _finalize(components)
    return CompositeScoreResult(
        date=day,
        score_type=ScoreType.SLEEP,
        final_score=final,
        components=tuple(components),
        computed_at=datetime.now(timezone.utc),
        directive=sleep_directive(final),
    )


# ---------------------------------------------------------------------------
# Recovery
# ---------------------------------------------------------------------------

def recovery_components(
    metrics: DailyMetrics,
    baseline: BaselineSnapshot,
) -> list[ComponentScore]:
    """Component breakdown of the Recovery score."""
    components: list[ComponentScore] = []

    hrv = metrics.hrv
    hrv_base = baseline.get(Biomarker.HRV)
    if hrv is None or hrv_base is None:
        components.append(_neutral(
            HRV, RECOVERY_HRV_POINTS, hrv,
            "No HRV reading" if hrv is None else "HRV baseline calibrating",
        ))
    else:
        # Only a drop below baseline counts against recovery
        components.append(ComponentScore(
            name=HRV,
            raw_value=hrv,
            sub_score=gaussian_score(min(hrv, hrv_base), hrv_base, HRV_SIGMA_MS),
            max_points=RECOVERY_HRV_POINTS,
            description=f"{hrv:.0f} ms vs {hrv_base:.0f} ms baseline",
        ))

    rhr = metrics.rhr
    rhr_base = baseline.get(Biomarker.RHR)
    if rhr is None or rhr_base is None:
        components.append(_neutral(
            RESTING_HR, RECOVERY_RHR_POINTS, rhr,
            "No resting heart rate" if rhr is None else "Resting HR baseline calibrating",
        ))
    else:
        components.append(ComponentScore(
            name=RESTING_HR,
            raw_value=rhr,
            sub_score=ratio_score(rhr_base, rhr, floor=RHR_RATIO_FLOOR),
            max_points=RECOVERY_RHR_POINTS,
            description=f"{rhr:.0f} bpm vs {rhr_base:.0f} bpm baseline",
        ))

    if metrics.has_sleep_data:
        sleep_score = clamp(sum(c.points for c in sleep_components(metrics, baseline)))
        components.append(ComponentScore(
            name=SLEEP_QUALITY,
            raw_value=sleep_score,
            sub_score=sleep_score,
            max_points=RECOVERY_SLEEP_POINTS,
            description=f"Last night's sleep scored {sleep_score:.0f}",
        ))
    else:
        components.append(_neutral(SLEEP_QUALITY, RECOVERY_SLEEP_POINTS, None, "No sleep session"))

    stress = deviation_stress_score([
        (metrics.respiratory_rate, baseline.get(Biomarker.RESPIRATORY_RATE)),
        (metrics.walking_heart_rate, baseline.get(Biomarker.WALKING_HEART_RATE)),
        (metrics.oxygen_saturation, baseline.get(Biomarker.OXYGEN_SATURATION)),
    ])
    if stress is None:
        components.append(_neutral(STRESS, RECOVERY_STRESS_POINTS, None, "No stress markers"))
    else:
        components.append(ComponentScore(
            name=STRESS,
            raw_value=100 - stress,
            sub_score=stress,
            max_points=RECOVERY_STRESS_POINTS,
            description=f"Markers {100 - stress:.1f}% off baseline on average",
        ))

    return components


def recovery_directive(score: int, components: list[ComponentScore]) -> str:
    if score >= 85:
        return "Primed for peak performance. Your body is ready for high-intensity training."
    if score >= 70:
        return "Good recovery state. Moderate to high-intensity training is appropriate."
    if score >= 55:
        return "Moderate recovery. Consider lighter training or active recovery."

    by_name = {c.name: c.sub_score for c in components}
    if by_name.get(HRV, 100) < 60:
        return "Nervous system under strain. Prioritize rest and recovery activities."
    if by_name.get(RESTING_HR, 100) < 60:
        return "Elevated cardiovascular load. Focus on active recovery and stress management."
    if by_name.get(SLEEP_QUALITY, 100) < 50:
        return "Poor sleep quality detected. Prioritize sleep hygiene and recovery."
    if by_name.get(STRESS, 100) < 70:
        return "Stress indicators present. Consider reducing training load."
    return "Recovery needs attention. Focus on rest, nutrition, and stress management."


def score_recovery(
    day: date,
    metrics: DailyMetrics | None,
    baseline: BaselineSnapshot,
) -> CompositeScoreResult | None:
    """Recovery score for ``day``; None without an HRV or resting HR reading."""
    if metrics is None or not metrics.has_recovery_data:
        return None
    components = recovery_components(metrics, baseline)
    final = _finalize(components)
    return CompositeScoreResult(
        date=day,
        score_type=ScoreType.RECOVERY,
        final_score=final,
        components=tuple(components),
        computed_at=datetime.now(timezone.utc),
        directive=recovery_directive(final, components),
    )


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

SCORE_FUNCTIONS: dict[ScoreType, Callable[..., CompositeScoreResult | None]] = {
    ScoreType.RECOVERY: score_recovery,
    ScoreType.SLEEP: score_sleep,
}


async def calculate(
    score_type: ScoreType,
    day: date,
    metrics: DailyMetrics | None,
    baseline: BaselineSnapshot,
) -> CompositeScoreResult | None:
    """Compute one composite score. No side effects."""
    result = SCORE_FUNCTIONS[score_type](day, metrics, baseline)
    if result is None:
        logger.debug("No %s session data for %s", score_type.value, day)
    return result


async def calculate_all(
    day: date,
    metrics: DailyMetrics | None,
    baseline: BaselineSnapshot,
) -> dict[ScoreType, CompositeScoreResult | None]:
    """Run every calculator concurrently and join the results."""
    types = list(SCORE_FUNCTIONS)
    results = await asyncio.gather(
        *(calculate(score_type, day, metrics, baseline) for score_type in types)
    )
    return dict(zip(types, results))


def _clock(seconds: float) -> str:
    minutes = int(seconds // 60) % 1440
    return f"{minutes // 60:02d}:{minutes % 60:02d}"
