"""Metrics connectors: the raw data boundary of the scoring pipeline."""

from __future__ import annotations

from datetime import date
from typing import Protocol, runtime_checkable

from vitalscore.domains.health.domain_logic.models import Biomarker, DailyMetrics


@runtime_checkable
class MetricsSource(Protocol):
    """Abstract interface for per-day biomarker retrieval.

    The pipeline calls these methods without knowing whether data comes
    from a wearable export, fixtures, or a synthetic generator.
    """

    async def fetch(self, day: date) -> DailyMetrics | None:
        """All readings for ``day``, or None when nothing was recorded."""
        ...

    async def fetch_series(self, biomarker: Biomarker, day: date) -> float | None:
        """A single biomarker reading for ``day``, or None."""
        ...

    def is_connected(self) -> bool:
        """Whether the source can currently supply real data."""
        ...

    @property
    def data_source(self) -> str:
        """Label for the source: 'apple_health', 'static', 'mock', 'composite'."""
        ...
