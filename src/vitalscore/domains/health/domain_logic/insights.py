"""Plain-language insight for a computed score.

Each insight has three layers: a one-line headline naming what helped or
limited the score, a per-component status breakdown, and a single
actionable recommendation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from vitalscore.domains.health.domain_logic import calculators as calc
from vitalscore.domains.health.domain_logic.models import CompositeScoreResult, DailyMetrics


class InsightStatus(str, Enum):
    OPTIMAL = "optimal"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {
    InsightStatus.OPTIMAL: 0,
    InsightStatus.GOOD: 1,
    InsightStatus.FAIR: 2,
    InsightStatus.POOR: 3,
}


@dataclass(frozen=True)
class ComponentInsight:
    metric_name: str
    user_value: str
    optimal_range: str
    analysis: str
    status: InsightStatus

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric_name": self.metric_name,
            "user_value": self.user_value,
            "optimal_range": self.optimal_range,
            "analysis": self.analysis,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class ScoreInsight:
    headline: str
    components: tuple[ComponentInsight, ...]
    recommendation: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "headline": self.headline,
            "components": [c.to_dict() for c in self.components],
            "recommendation": self.recommendation,
        }


# ---------------------------------------------------------------------------
# Recovery
# ---------------------------------------------------------------------------

def score_status(sub_score: float) -> InsightStatus:
    """Status of a 0-100 component sub-score."""
    if sub_score >= 90:
        return InsightStatus.OPTIMAL
    if sub_score >= 80:
        return InsightStatus.GOOD
    if sub_score >= 65:
        return InsightStatus.FAIR
    return InsightStatus.POOR


_RECOVERY_LIMITER_HEADLINES = {
    calc.HRV: "Suboptimal HRV is limiting your body's ability to recover.",
    calc.RESTING_HR: "Elevated resting heart rate is constraining today's readiness.",
    calc.SLEEP_QUALITY: "Suboptimal sleep is the primary factor limiting recovery.",
    calc.STRESS: "Elevated stress is curbing recovery capacity today.",
}


def recovery_insight(result: CompositeScoreResult) -> ScoreInsight:
    components = tuple(
        ComponentInsight(
            metric_name=c.name,
            user_value="n/a" if c.raw_value is None else f"{c.raw_value:.0f}",
            optimal_range="at or better than baseline",
            analysis=c.description,
            status=score_status(c.sub_score),
        )
        for c in result.components
    )

    ranked = sorted(result.components, key=lambda c: c.sub_score)
    limiter, driver = ranked[0], ranked[-1]

    if all(c.status.severity <= 1 for c in components):
        headline = "Your body is in a stable, well-recovered state, ready for a productive day."
    elif limiter.name == driver.name:
        headline = "Mixed signals detected; monitor your recovery closely today."
    else:
        headline = _RECOVERY_LIMITER_HEADLINES.get(
            limiter.name, "One or more factors are limiting your recovery today."
        )

    score = result.final_score
    if score >= 85:
        recommendation = "Your body is primed. Push maximal intensity or aim for a personal record today."
    elif score >= 65:
        recommendation = "You are well-recovered. Execute your planned workout with discipline and focus."
    elif score >= 40:
        recommendation = "Recovery is compromised. Reduce training volume by ~25% or adopt lower intensity."
    else:
        recommendation = "Recovery is low. Take a strategic rest day with active recovery only."

    return ScoreInsight(headline=headline, components=components, recommendation=recommendation)


# ---------------------------------------------------------------------------
# Sleep
# ---------------------------------------------------------------------------

def range_status(value: float, low: float, high: float) -> InsightStatus:
    """Optimal inside ``[low, high]``; otherwise by relative distance from the band."""
    if low <= value <= high:
        return InsightStatus.OPTIMAL
    if value < low:
        deviation = (low - value) / low if low else 1.0
    else:
        deviation = (value - high) / high if high else 1.0
    if deviation < 0.05:
        return InsightStatus.GOOD
    if deviation < 0.15:
        return InsightStatus.FAIR
    return InsightStatus.POOR


def _hm(seconds: float) -> str:
    minutes = int(round(seconds / 60))
    hours, rest = divmod(minutes, 60)
    if hours == 0:
        return f"{rest}m"
    return f"{hours}h" if rest == 0 else f"{hours}h {rest}m"


_STATUS_ANALYSIS = {
    InsightStatus.OPTIMAL: "Your {name} met the optimal range.",
    InsightStatus.GOOD: "Your {name} was close to optimal; small adjustments could make it perfect.",
    InsightStatus.FAIR: "Your {name} was outside the optimal range. Aim for improvement.",
    InsightStatus.POOR: "Your {name} was well outside the optimal range and needs attention.",
}

_SLEEP_STRENGTHS = {
    calc.EFFICIENCY: "sleep was highly efficient",
    calc.DURATION: "sleep duration was on point",
    calc.DEEP_SLEEP: "Deep Sleep was strong",
    calc.REM_SLEEP: "REM Sleep was strong",
    calc.ONSET: "you fell asleep quickly",
}

_SLEEP_WEAKNESSES = {
    calc.DEEP_SLEEP: "a lack of Deep Sleep may impact physical recovery today",
    calc.REM_SLEEP: "low REM Sleep could affect mental clarity",
    calc.DURATION: "short sleep duration may leave you under-rested",
    calc.EFFICIENCY: "restlessness reduced your sleep efficiency",
    calc.ONSET: "long sleep onset delayed restorative processes",
}

_SLEEP_RECOMMENDATIONS = {
    calc.DEEP_SLEEP: "To improve Deep Sleep, avoid caffeine after 2 PM and keep your room cool (about 19 °C).",
    calc.DURATION: "Aim to be in bed 30 minutes earlier tonight to meet your sleep need.",
    calc.REM_SLEEP: "Avoid alcohol before bed and keep a consistent wake-up time to support REM Sleep.",
    calc.EFFICIENCY: "Limit screen time before bed and keep the bedroom dark and quiet to boost efficiency.",
    calc.ONSET: "Create a calming wind-down routine to help you fall asleep faster.",
}


def _component(name: str, user_value: str, optimal: str, status: InsightStatus) -> ComponentInsight:
    return ComponentInsight(
        metric_name=name,
        user_value=user_value,
        optimal_range=optimal,
        analysis=_STATUS_ANALYSIS[status].format(name=name),
        status=status,
    )


def sleep_insight(metrics: DailyMetrics) -> ScoreInsight | None:
    """Insight for the night in ``metrics``; None without a sleep session."""
    if not metrics.has_sleep_data:
        return None

    asleep = metrics.sleep_duration or 0.0
    deep = metrics.deep_sleep or 0.0
    rem = metrics.rem_sleep or 0.0
    efficiency = metrics.sleep_efficiency or 0.0
    onset = metrics.sleep_latency or 0.0
    deep_low, deep_high = (asleep * p / 100 for p in calc.DEEP_BAND_PCT)
    rem_low, rem_high = (asleep * p / 100 for p in calc.REM_BAND_PCT)

    rem_status = (
        InsightStatus.OPTIMAL
        if rem >= calc.REM_TARGET_MINUTES * 60
        else range_status(rem, rem_low, rem_high)
    )
    components = (
        _component(calc.DURATION, _hm(asleep), "7-9h", range_status(asleep / 60, 420, 540)),
        _component(
            calc.DEEP_SLEEP, _hm(deep), f"{_hm(deep_low)}-{_hm(deep_high)}",
            range_status(deep, deep_low, deep_high),
        ),
        _component(calc.REM_SLEEP, _hm(rem), f"{_hm(rem_low)}-{_hm(rem_high)}", rem_status),
        _component(
            calc.EFFICIENCY, f"{efficiency:.0f}%", "90% or more",
            range_status(efficiency, 90, 100),
        ),
        _component(calc.ONSET, f"{onset:.0f} min", "15m or less", range_status(onset, 0, 15)),
    )

    weakest = max(components, key=lambda c: c.status.severity)
    strongest = min(components, key=lambda c: c.status.severity)

    if weakest.status is InsightStatus.OPTIMAL:
        headline = "Your sleep was well balanced across all key metrics. Great job!"
    else:
        positive = _SLEEP_STRENGTHS.get(strongest.metric_name, "overall sleep quality was solid")
        negative = _SLEEP_WEAKNESSES.get(weakest.metric_name, "imbalances could impact your day")
        headline = f"While your {positive}, {negative}."

    recommendation = _SLEEP_RECOMMENDATIONS.get(
        weakest.metric_name, "Maintain good sleep hygiene for continued improvements."
    )
    if weakest.status is InsightStatus.OPTIMAL:
        recommendation = "Maintain good sleep hygiene for continued improvements."

    return ScoreInsight(headline=headline, components=components, recommendation=recommendation)
