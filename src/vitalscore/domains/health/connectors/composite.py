"""Composite metrics source: picks one source from a priority list.

Priority order is the order given: typically apple_health > json > mock.
The first connected source is chosen once, when the composite is built,
and serves every day and every biomarker for the rest of the run. Days
that source has no reading for stay empty; they are never filled from a
lower-priority source, so baselines and scores only ever see one
provider's data.
"""

from __future__ import annotations

import logging
from datetime import date

from vitalscore.domains.health.connectors import MetricsSource
from vitalscore.domains.health.domain_logic.models import Biomarker, DailyMetrics

logger = logging.getLogger(__name__)


class CompositeMetricsSource:
    """Selects the highest-priority connected MetricsSource.

    When no source is connected the last one is used, which is where a
    mock fallback belongs.

    Usage::

        composite = CompositeMetricsSource([
            apple_health_source,  # Highest priority
            json_source,
        ])
        metrics = await composite.fetch(date(2026, 3, 14))
    """

    def __init__(self, sources: list[MetricsSource]) -> None:
        """Initialize with sources in priority order (highest first).

        Raises:
            ValueError: If ``sources`` is empty.
        """
        if not sources:
            raise ValueError("At least one source is required")
        self._sources = sources
        self._active = next((s for s in sources if s.is_connected()), sources[-1])
        logger.info("Using metrics source: %s", self._active.data_source)

    @property
    def active(self) -> MetricsSource:
        """The source serving this run."""
        return self._active

    async def fetch(self, day: date) -> DailyMetrics | None:
        return await self._active.fetch(day)

    async def fetch_series(self, biomarker: Biomarker, day: date) -> float | None:
        return await self._active.fetch_series(biomarker, day)

    def is_connected(self) -> bool:
        return self._active.is_connected()

    @property
    def data_source(self) -> str:
        return self._active.data_source

    def describe(self) -> dict[str, str]:
        """Provenance info including all connected sources."""
        connected = [s.data_source for s in self._sources if s.is_connected()]
        return {
            "data_source": self.data_source,
            "active_sources": ", ".join(connected) if connected else "none",
            "priority": " > ".join(s.data_source for s in self._sources),
        }
