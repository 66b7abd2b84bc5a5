"""Health scoring models and biomarker constants."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from vitalscore.core.storage.models import ScoreType

SECONDS_PER_DAY = 86_400


class Biomarker(str, Enum):
    """A single measurable physiological quantity."""

    HRV = "hrv"
    RHR = "rhr"
    RESPIRATORY_RATE = "respiratory_rate"
    WALKING_HEART_RATE = "walking_heart_rate"
    OXYGEN_SATURATION = "oxygen_saturation"
    SLEEP_DURATION = "sleep_duration"
    TIME_IN_BED = "time_in_bed"
    DEEP_SLEEP = "deep_sleep"
    REM_SLEEP = "rem_sleep"
    BEDTIME = "bedtime"
    WAKE_TIME = "wake_time"
    # Derived from the sleep session
    SLEEP_EFFICIENCY = "sleep_efficiency"
    SLEEP_LATENCY = "sleep_latency"

    @property
    def unit(self) -> str:
        return BIOMARKER_UNITS[self]

    @property
    def is_time_of_day(self) -> bool:
        return self in (Biomarker.BEDTIME, Biomarker.WAKE_TIME)


BIOMARKER_UNITS: dict[Biomarker, str] = {
    Biomarker.HRV: "ms",
    Biomarker.RHR: "bpm",
    Biomarker.RESPIRATORY_RATE: "breaths/min",
    Biomarker.WALKING_HEART_RATE: "bpm",
    Biomarker.OXYGEN_SATURATION: "%",
    Biomarker.SLEEP_DURATION: "s",
    Biomarker.TIME_IN_BED: "s",
    Biomarker.DEEP_SLEEP: "s",
    Biomarker.REM_SLEEP: "s",
    Biomarker.BEDTIME: "s",
    Biomarker.WAKE_TIME: "s",
    Biomarker.SLEEP_EFFICIENCY: "%",
    Biomarker.SLEEP_LATENCY: "min",
}

# Biomarkers with a personal baseline
BASELINE_BIOMARKERS: tuple[Biomarker, ...] = (
    Biomarker.HRV,
    Biomarker.RHR,
    Biomarker.RESPIRATORY_RATE,
    Biomarker.WALKING_HEART_RATE,
    Biomarker.OXYGEN_SATURATION,
    Biomarker.SLEEP_DURATION,
    Biomarker.BEDTIME,
    Biomarker.WAKE_TIME,
)


def seconds_from_midnight(moment: datetime) -> float:
    """Seconds elapsed since local midnight for ``moment``."""
    if moment.tzinfo is not None:
        moment = moment.astimezone()
    return float(moment.hour * 3600 + moment.minute * 60 + moment.second)


# ---------------------------------------------------------------------------
# Raw data
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DailyMetrics:
    """Raw biomarker readings for one calendar day.

    Sleep fields describe the night that ended on ``date``. Durations are
    in seconds. Every reading is optional.
    """

    date: date
    hrv: float | None = None
    rhr: float | None = None
    respiratory_rate: float | None = None
    walking_heart_rate: float | None = None
    oxygen_saturation: float | None = None
    sleep_duration: float | None = None
    time_in_bed: float | None = None
    deep_sleep: float | None = None
    rem_sleep: float | None = None
    bedtime: datetime | None = None
    wake_time: datetime | None = None

    @property
    def has_recovery_data(self) -> bool:
        return self.hrv is not None or self.rhr is not None

    @property
    def has_sleep_data(self) -> bool:
        return bool(self.sleep_duration) and bool(self.time_in_bed)

    @property
    def sleep_efficiency(self) -> float | None:
        """Time asleep as a percentage of time in bed."""
        if not self.sleep_duration or not self.time_in_bed:
            return None
        return self.sleep_duration / self.time_in_bed * 100

    @property
    def sleep_latency(self) -> float | None:
        """Minutes in bed not spent asleep."""
        if self.sleep_duration is None or self.time_in_bed is None:
            return None
        return max(0.0, (self.time_in_bed - self.sleep_duration) / 60)

    def value(self, biomarker: Biomarker) -> float | None:
        """Return the reading for ``biomarker`` as a float, or None."""
        if biomarker is Biomarker.BEDTIME:
            return seconds_from_midnight(self.bedtime) if self.bedtime else None
        if biomarker is Biomarker.WAKE_TIME:
            return seconds_from_midnight(self.wake_time) if self.wake_time else None
        return getattr(self, biomarker.value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "hrv": self.hrv,
            "rhr": self.rhr,
            "respiratory_rate": self.respiratory_rate,
            "walking_heart_rate": self.walking_heart_rate,
            "oxygen_saturation": self.oxygen_saturation,
            "sleep_duration": self.sleep_duration,
            "time_in_bed": self.time_in_bed,
            "deep_sleep": self.deep_sleep,
            "rem_sleep": self.rem_sleep,
            "bedtime": self.bedtime.isoformat() if self.bedtime else None,
            "wake_time": self.wake_time.isoformat() if self.wake_time else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DailyMetrics:
        def _dt(value: Any) -> datetime | None:
            return datetime.fromisoformat(value) if value else None

        def _num(key: str) -> float | None:
            value = data.get(key)
            return float(value) if value is not None else None

        return cls(
            date=date.fromisoformat(str(data["date"])[:10]),
            hrv=_num("hrv"),
            rhr=_num("rhr"),
            respiratory_rate=_num("respiratory_rate"),
            walking_heart_rate=_num("walking_heart_rate"),
            oxygen_saturation=_num("oxygen_saturation"),
            sleep_duration=_num("sleep_duration"),
            time_in_bed=_num("time_in_bed"),
            deep_sleep=_num("deep_sleep"),
            rem_sleep=_num("rem_sleep"),
            bedtime=_dt(data.get("bedtime")),
            wake_time=_dt(data.get("wake_time")),
        )


# ---------------------------------------------------------------------------
# Baseline
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BaselineSnapshot:
    """Per-biomarker rolling statistic computed from days before ``date``.

    ``lookback_days`` is the long window; ``windows`` records the window
    each biomarker was actually averaged over. A biomarker maps to None
    when it had too few valid samples in its window. The canonical dict
    form is embedded verbatim in persisted scores.
    """

    date: date
    lookback_days: int
    values: dict[Biomarker, float | None]
    sample_counts: dict[Biomarker, int] = field(default_factory=dict)
    windows: dict[Biomarker, int] = field(default_factory=dict)
    calculated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def get(self, biomarker: Biomarker) -> float | None:
        return self.values.get(biomarker)

    @property
    def calibrating(self) -> bool:
        """True while the core recovery baselines are still missing."""
        return self.get(Biomarker.HRV) is None or self.get(Biomarker.RHR) is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "lookback_days": self.lookback_days,
            "values": {b.value: v for b, v in self.values.items()},
            "sample_counts": {b.value: n for b, n in self.sample_counts.items()},
            "windows": {b.value: n for b, n in self.windows.items()},
            "calculated_at": self.calculated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BaselineSnapshot:
        calculated = data.get("calculated_at")
        return cls(
            date=date.fromisoformat(str(data["date"])[:10]),
            lookback_days=int(data.get("lookback_days", 0)),
            values={Biomarker(k): v for k, v in (data.get("values") or {}).items()},
            sample_counts={
                Biomarker(k): int(n) for k, n in (data.get("sample_counts") or {}).items()
            },
            windows={Biomarker(k): int(n) for k, n in (data.get("windows") or {}).items()},
            calculated_at=(
                datetime.fromisoformat(calculated)
                if calculated
                else datetime.now(timezone.utc)
            ),
        )


# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ComponentScore:
    """One weighted contribution to a composite score."""

    name: str
    raw_value: float | None
    sub_score: float          # 0-100
    max_points: float
    description: str = ""

    @property
    def points(self) -> float:
        return self.sub_score * self.max_points / 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "raw_value": self.raw_value,
            "sub_score": round(self.sub_score, 1),
            "max_points": self.max_points,
            "points": round(self.points, 1),
            "description": self.description,
        }


@dataclass(frozen=True)
class CompositeScoreResult:
    """A final 0-100 score with its component breakdown."""

    date: date
    score_type: ScoreType
    final_score: int
    components: tuple[ComponentScore, ...]
    computed_at: datetime
    directive: str = ""

    def component(self, name: str) -> ComponentScore | None:
        for comp in self.components:
            if comp.name == name:
                return comp
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "score_type": self.score_type.value,
            "final_score": self.final_score,
            "components": [c.to_dict() for c in self.components],
            "computed_at": self.computed_at.isoformat(),
            "directive": self.directive,
        }


# ---------------------------------------------------------------------------
# Trends and cache
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TrendSeries:
    """Daily values for one biomarker, oldest first."""

    biomarker: Biomarker
    unit: str
    values: tuple[float, ...]
    percent_change: float | None
    direction: str = "insufficient_data"

    @property
    def current(self) -> float | None:
        return self.values[-1] if self.values else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "biomarker": self.biomarker.value,
            "unit": self.unit,
            "values": [round(v, 2) for v in self.values],
            "percent_change": (
                round(self.percent_change, 1) if self.percent_change is not None else None
            ),
            "direction": self.direction,
        }


@dataclass(frozen=True)
class CacheEntry:
    """Everything the pipeline computed for one day, published as a unit."""

    date: date
    raw_data: DailyMetrics | None
    baseline: BaselineSnapshot
    recovery: CompositeScoreResult | None
    sleep: CompositeScoreResult | None
    trends: dict[Biomarker, TrendSeries]
    timestamp: datetime

    def result(self, score_type: ScoreType) -> CompositeScoreResult | None:
        return self.recovery if score_type is ScoreType.RECOVERY else self.sleep

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "raw_data": self.raw_data.to_dict() if self.raw_data else None,
            "baseline": self.baseline.to_dict(),
            "calibrating": self.baseline.calibrating,
            "recovery": self.recovery.to_dict() if self.recovery else None,
            "sleep": self.sleep.to_dict() if self.sleep else None,
            "trends": {b.value: t.to_dict() for b, t in self.trends.items()},
            "timestamp": self.timestamp.isoformat(),
        }
