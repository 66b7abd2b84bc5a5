"""Longitudinal statistics over persisted composite scores.

Summarizes a stretch of saved Recovery or Sleep scores and flags days
where the two scores moved apart.
"""

from __future__ import annotations

import logging
import statistics
from datetime import date, timedelta
from typing import Any

from vitalscore.core.storage.models import ScoreType
from vitalscore.core.storage.score_history import ScoreHistoryStore

logger = logging.getLogger(__name__)

# Points between half-window means treated as stable
_STABLE_POINTS = 3.0


class ScoreTrendAnalyzer:
    """Computes trends from stored score history.

    Usage::

        analyzer = ScoreTrendAnalyzer(store)
        trend = analyzer.compute_score_trend(ScoreType.RECOVERY, end=date.today(), days=30)
    """

    def __init__(self, store: ScoreHistoryStore) -> None:
        self._store = store

    def compute_score_trend(
        self,
        score_type: ScoreType,
        *,
        end: date,
        days: int = 30,
    ) -> dict[str, Any]:
        """Compute trend statistics for one score type.

        Args:
            score_type: Recovery or Sleep.
            end: Last day of the window (inclusive).
            days: Window length in days.

        Returns:
            Dict with: current, mean, median, min, max, std_dev, direction,
            volatility, data_points.
        """
        start = end - timedelta(days=max(1, days) - 1)
        history = self._store.get_range(start, end, score_type)

        if not history:
            return {
                "score_type": score_type.value,
                "data_points": 0,
                "status": "no_data",
            }

        values = [float(s.final_score) for s in history]  # oldest first
        current = values[-1]

        if len(values) >= 4:
            mid = len(values) // 2
            diff = statistics.mean(values[mid:]) - statistics.mean(values[:mid])
        elif len(values) >= 2:
            diff = current - values[0]
        else:
            diff = None

        if diff is None:
            direction = "insufficient_data"
        elif diff > _STABLE_POINTS:
            direction = "improving"
        elif diff < -_STABLE_POINTS:
            direction = "declining"
        else:
            direction = "stable"

        mean_val = statistics.mean(values)
        std_val = statistics.stdev(values) if len(values) > 1 else 0.0
        volatility = std_val / mean_val if mean_val > 0 else 0.0

        return {
            "score_type": score_type.value,
            "start": start.isoformat(),
            "end": end.isoformat(),
            "current": current,
            "mean": round(mean_val, 2),
            "median": round(statistics.median(values), 2),
            "min": min(values),
            "max": max(values),
            "std_dev": round(std_val, 2),
            "direction": direction,
            "volatility": round(volatility, 4),
            "data_points": len(values),
        }

    def detect_divergence(self, *, end: date, days: int = 30) -> dict[str, Any] | None:
        """Report when Recovery and Sleep trend in opposite directions."""
        recovery = self.compute_score_trend(ScoreType.RECOVERY, end=end, days=days)
        sleep = self.compute_score_trend(ScoreType.SLEEP, end=end, days=days)
        directions = {recovery.get("direction"), sleep.get("direction")}
        if directions != {"improving", "declining"}:
            return None

        improving = "recovery" if recovery["direction"] == "improving" else "sleep"
        declining = "sleep" if improving == "recovery" else "recovery"
        return {
            "improving_score": improving,
            "declining_score": declining,
            "description": (
                f"{improving.title()} is improving while {declining} is declining; "
                "this divergence may deserve attention."
            ),
        }
