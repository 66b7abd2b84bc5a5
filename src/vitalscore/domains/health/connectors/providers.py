"""Concrete MetricsSource implementations."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import date
from pathlib import Path

from vitalscore.domains.health.connectors.mock_data import get_mock_daily_metrics
from vitalscore.domains.health.domain_logic.models import Biomarker, DailyMetrics

logger = logging.getLogger(__name__)


class MockMetricsSource:
    """Uses the deterministic mock generator. Always available.

    Args:
        missing_days: Days that should report no data at all.
    """

    def __init__(self, missing_days: Iterable[date] = ()) -> None:
        self._missing = set(missing_days)

    async def fetch(self, day: date) -> DailyMetrics | None:
        if day in self._missing:
            return None
        return get_mock_daily_metrics(day)

    async def fetch_series(self, biomarker: Biomarker, day: date) -> float | None:
        metrics = await self.fetch(day)
        return metrics.value(biomarker) if metrics else None

    def is_connected(self) -> bool:
        return False

    @property
    def data_source(self) -> str:
        return "mock"


class StaticMetricsSource:
    """Serves a fixed set of DailyMetrics, e.g. fixtures or a JSON dump.

    Usage::

        source = StaticMetricsSource.from_json("daily_metrics.json")
        metrics = await source.fetch(date(2026, 3, 14))
    """

    def __init__(self, metrics: Iterable[DailyMetrics], *, label: str = "static") -> None:
        self._by_day = {m.date: m for m in metrics}
        self._label = label

    @classmethod
    def from_json(cls, path: str | Path) -> StaticMetricsSource:
        """Load a JSON array of ``DailyMetrics.to_dict()`` objects."""
        payload = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
        metrics = [DailyMetrics.from_dict(item) for item in payload]
        logger.info("Loaded %d days of metrics from %s", len(metrics), path)
        return cls(metrics, label="json")

    async def fetch(self, day: date) -> DailyMetrics | None:
        return self._by_day.get(day)

    async def fetch_series(self, biomarker: Biomarker, day: date) -> float | None:
        metrics = self._by_day.get(day)
        return metrics.value(biomarker) if metrics else None

    def is_connected(self) -> bool:
        return bool(self._by_day)

    @property
    def data_source(self) -> str:
        return self._label

    def days(self) -> list[date]:
        return sorted(self._by_day)
