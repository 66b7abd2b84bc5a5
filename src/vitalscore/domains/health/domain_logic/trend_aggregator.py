"""Short-term trend series per biomarker.

Produces one value per day for the ``days``-day window ending on the
target date, oldest first. Days without a reading are zero-filled so every
series has exactly ``days`` points and lines up with its neighbours; a
zero therefore means "no data", and percent change against a zero is
undefined rather than infinite.
"""

from __future__ import annotations

import asyncio
import logging
import statistics
from collections.abc import Iterable
from datetime import date, timedelta

from vitalscore.domains.health.connectors import MetricsSource
from vitalscore.domains.health.domain_logic.baseline_engine import gather_or_cancel
from vitalscore.domains.health.domain_logic.models import Biomarker, TrendSeries

logger = logging.getLogger(__name__)

TREND_BIOMARKERS: tuple[Biomarker, ...] = (
    Biomarker.HRV,
    Biomarker.RHR,
    Biomarker.TIME_IN_BED,
    Biomarker.SLEEP_DURATION,
    Biomarker.REM_SLEEP,
    Biomarker.DEEP_SLEEP,
    Biomarker.SLEEP_EFFICIENCY,
)

# Sleep durations are charted in hours
_DISPLAY_SCALE: dict[Biomarker, tuple[float, str]] = {
    Biomarker.TIME_IN_BED: (1 / 3600, "h"),
    Biomarker.SLEEP_DURATION: (1 / 3600, "h"),
    Biomarker.REM_SLEEP: (1 / 3600, "h"),
    Biomarker.DEEP_SLEEP: (1 / 3600, "h"),
}

# Relative change between window halves treated as flat
_FLAT_THRESHOLD = 0.03


def percent_change(current: float | None, previous: float | None) -> float | None:
    """``(current - previous) / previous * 100``; None when previous is 0 or missing."""
    if current is None or previous is None or previous == 0:
        return None
    return (current - previous) / previous * 100


def trend_direction(values: Iterable[float]) -> str:
    """Compare the mean of the recent half of the window with the older half."""
    observed = [v for v in values if v != 0]
    if len(observed) < 4:
        return "insufficient_data"
    mid = len(observed) // 2
    older = statistics.fmean(observed[:mid])
    recent = statistics.fmean(observed[mid:])
    if older == 0:
        return "insufficient_data"
    change = (recent - older) / older
    if change > _FLAT_THRESHOLD:
        return "up"
    if change < -_FLAT_THRESHOLD:
        return "down"
    return "flat"


class TrendAggregator:
    """Builds TrendSeries from an injected metrics source.

    Per-day fetches for every biomarker are issued together and bounded
    by a semaphore, then joined before any series is assembled.

    Usage::

        aggregator = TrendAggregator(source, concurrency=8)
        trends = await aggregator.trends(date(2026, 3, 14), days=7)
        trends[Biomarker.HRV].percent_change
    """

    def __init__(
        self,
        source: MetricsSource,
        *,
        concurrency: int = 8,
        biomarkers: Iterable[Biomarker] = TREND_BIOMARKERS,
    ) -> None:
        self._source = source
        self._concurrency = max(1, concurrency)
        self._biomarkers = tuple(biomarkers)

    async def trends(self, target: date, days: int) -> dict[Biomarker, TrendSeries]:
        """Return one series per trend biomarker for the window ending on ``target``."""
        if days <= 0:
            return {}
        window = [target - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _one(biomarker: Biomarker, day: date) -> float | None:
            async with semaphore:
                return await self._source.fetch_series(biomarker, day)

        flat = await gather_or_cancel(
            *(_one(b, day) for b in self._biomarkers for day in window)
        )

        result: dict[Biomarker, TrendSeries] = {}
        for index, biomarker in enumerate(self._biomarkers):
            raw = flat[index * days:(index + 1) * days]
            scale, unit = _DISPLAY_SCALE.get(biomarker, (1.0, biomarker.unit))
            values = tuple((v * scale) if v is not None else 0.0 for v in raw)
            previous = values[-2] if len(values) >= 2 else None
            result[biomarker] = TrendSeries(
                biomarker=biomarker,
                unit=unit,
                values=values,
                percent_change=percent_change(values[-1], previous),
                direction=trend_direction(values),
            )

        logger.debug("Built %d trend series for %s (%d days)", len(result), target, days)
        return result
