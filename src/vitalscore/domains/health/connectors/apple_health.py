"""Apple Health metrics source: reads from an exported Health data XML.

Users export via iOS Health app → Share → Export Health Data → produces
export.xml. The export is parsed once on first use and served from memory.
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path

from vitalscore.domains.health.connectors.apple_health_parser import (
    AppleHealthParseError,
    parse_apple_health_export,
)
from vitalscore.domains.health.domain_logic.models import Biomarker, DailyMetrics

logger = logging.getLogger(__name__)


class AppleHealthMetricsSource:
    """MetricsSource backed by an Apple Health XML export.

    Usage::

        source = AppleHealthMetricsSource("/path/to/export.xml")
        if source.is_connected():
            metrics = await source.fetch(date(2026, 3, 14))
    """

    def __init__(self, export_path: str) -> None:
        self._export_path = export_path
        self._days: dict[date, DailyMetrics] | None = None
        self._connected = bool(export_path) and Path(export_path).expanduser().exists()

    async def fetch(self, day: date) -> DailyMetrics | None:
        return self._load().get(day)

    async def fetch_series(self, biomarker: Biomarker, day: date) -> float | None:
        metrics = self._load().get(day)
        return metrics.value(biomarker) if metrics else None

    def is_connected(self) -> bool:
        """Check if the export file exists and parsed."""
        return self._connected

    @property
    def data_source(self) -> str:
        return "apple_health"

    def _load(self) -> dict[date, DailyMetrics]:
        """Parse the export on first use."""
        if self._days is None:
            if not self._connected:
                self._days = {}
                return self._days
            try:
                self._days = parse_apple_health_export(self._export_path)
            except AppleHealthParseError:
                logger.exception("Failed to parse Apple Health export")
                self._connected = False
                self._days = {}
        return self._days
