"""Rolling personal baselines from a biomarker's own recent history.

The baseline for a target date is built from the calendar days immediately
before it: ``lookback_days`` (60 by default) for HRV and resting heart rate,
and a short window (14 days by default) for sleep duration, bed and wake
times, walking heart rate, respiratory rate and SpO2. The target date
itself is never read, so a day's score can't be inflated by its own
values. Days without a reading are dropped (no interpolation), and a
biomarker with fewer than ``min_samples`` readings in its window has no
baseline rather than a noisy one.
"""

from __future__ import annotations

import asyncio
import logging
import math
import statistics
from collections.abc import Awaitable, Iterable, Sequence
from datetime import date, datetime, timedelta, timezone
from typing import TypeVar

from vitalscore.domains.health.connectors import MetricsSource
from vitalscore.domains.health.domain_logic.models import (
    BASELINE_BIOMARKERS,
    SECONDS_PER_DAY,
    BaselineSnapshot,
    Biomarker,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MIN_SAMPLES = 3
DEFAULT_CONCURRENCY = 8
DEFAULT_SHORT_WINDOW_DAYS = 14

# Baselined over the short window; every other biomarker uses ``lookback_days``
SHORT_WINDOW_BIOMARKERS: frozenset[Biomarker] = frozenset({
    Biomarker.RESPIRATORY_RATE,
    Biomarker.WALKING_HEART_RATE,
    Biomarker.OXYGEN_SATURATION,
    Biomarker.SLEEP_DURATION,
    Biomarker.BEDTIME,
    Biomarker.WAKE_TIME,
})


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

def circular_time_mean(seconds: Sequence[float]) -> float | None:
    """Mean of times of day on the 24h clock.

    23:00 and 01:00 average to midnight, not noon. Returns seconds from
    midnight in ``[0, 86400)``, or None for an empty input.
    """
    if not seconds:
        return None
    sin_sum = 0.0
    cos_sum = 0.0
    for value in seconds:
        angle = (value % SECONDS_PER_DAY) / SECONDS_PER_DAY * 2 * math.pi
        sin_sum += math.sin(angle)
        cos_sum += math.cos(angle)
    mean_angle = math.atan2(sin_sum, cos_sum)
    if mean_angle < 0:
        mean_angle += 2 * math.pi
    return (mean_angle / (2 * math.pi) * SECONDS_PER_DAY) % SECONDS_PER_DAY


def baseline_statistic(biomarker: Biomarker, samples: Sequence[float]) -> float | None:
    """Arithmetic mean, or circular mean for time-of-day biomarkers."""
    if not samples:
        return None
    if biomarker.is_time_of_day:
        return circular_time_mean(samples)
    return statistics.fmean(samples)


def lookback_window(target: date, lookback_days: int) -> list[date]:
    """The ``lookback_days`` days ending the day before ``target``, oldest first."""
    return [target - timedelta(days=offset) for offset in range(lookback_days, 0, -1)]


async def gather_or_cancel(*aws: Awaitable[T]) -> list[T]:
    """``asyncio.gather`` that cancels the remaining awaitables when one fails.

    The first exception propagates once every sibling has finished
    cancelling, so no source calls outlive a failed computation.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class BaselineEngine:
    """Computes BaselineSnapshots from an injected metrics source.

    Usage::

        engine = BaselineEngine(source, min_samples=3)
        baseline = await engine.calculate_baseline(date(2026, 3, 14), lookback_days=60)
        baseline.get(Biomarker.HRV)          # 60-day mean HRV, or None
        baseline.get(Biomarker.BEDTIME)      # 14-day circular mean bedtime
    """

    def __init__(
        self,
        source: MetricsSource,
        *,
        min_samples: int = DEFAULT_MIN_SAMPLES,
        concurrency: int = DEFAULT_CONCURRENCY,
        short_window_days: int = DEFAULT_SHORT_WINDOW_DAYS,
        biomarkers: Iterable[Biomarker] = BASELINE_BIOMARKERS,
        short_window_biomarkers: Iterable[Biomarker] = SHORT_WINDOW_BIOMARKERS,
    ) -> None:
        self._source = source
        self._min_samples = max(1, min_samples)
        self._concurrency = max(1, concurrency)
        self._short_window_days = max(1, short_window_days)
        self._biomarkers = tuple(biomarkers)
        self._short = frozenset(short_window_biomarkers)

    @property
    def min_samples(self) -> int:
        return self._min_samples

    def window_for(self, biomarker: Biomarker, lookback_days: int) -> int:
        """Window length for ``biomarker``; never longer than ``lookback_days``."""
        lookback_days = max(0, lookback_days)
        if biomarker in self._short:
            return min(self._short_window_days, lookback_days)
        return lookback_days

    async def _collect(
        self,
        biomarker: Biomarker,
        days: list[date],
        semaphore: asyncio.Semaphore,
    ) -> list[float]:
        async def _one(day: date) -> float | None:
            async with semaphore:
                return await self._source.fetch_series(biomarker, day)

        values = await gather_or_cancel(*(_one(day) for day in days))
        return [
            float(v) for v in values
            if v is not None and not (isinstance(v, float) and math.isnan(v))
        ]

    async def calculate_baseline(self, target: date, lookback_days: int) -> BaselineSnapshot:
        """Build the snapshot for ``target`` from the days before it.

        Args:
            target: Day being scored. Never included in its own baseline.
            lookback_days: Long window in calendar days. Short-window
                biomarkers use ``min(short_window_days, lookback_days)``.

        Returns:
            A snapshot with one entry per baseline biomarker; None where
            the biomarker's window held fewer than ``min_samples`` readings.
        """
        windows = {b: self.window_for(b, lookback_days) for b in self._biomarkers}
        semaphore = asyncio.Semaphore(self._concurrency)

        collected = await gather_or_cancel(*(
            self._collect(b, lookback_window(target, windows[b]), semaphore)
            for b in self._biomarkers
        ))

        values: dict[Biomarker, float | None] = {}
        counts: dict[Biomarker, int] = {}
        for biomarker, samples in zip(self._biomarkers, collected):
            counts[biomarker] = len(samples)
            if len(samples) < self._min_samples:
                values[biomarker] = None
            else:
                values[biomarker] = baseline_statistic(biomarker, samples)

        snapshot = BaselineSnapshot(
            date=target,
            lookback_days=lookback_days,
            values=values,
            sample_counts=counts,
            windows=windows,
            calculated_at=datetime.now(timezone.utc),
        )
        if snapshot.calibrating:
            logger.info(
                "Baseline for %s still calibrating (hrv samples=%d, rhr samples=%d)",
                target,
                counts.get(Biomarker.HRV, 0),
                counts.get(Biomarker.RHR, 0),
            )
        return snapshot
