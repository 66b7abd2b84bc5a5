"""Shared test fixtures for VitalScore tests."""

from __future__ import annotations

import asyncio
import sys
from collections import Counter
from datetime import date, datetime, timedelta
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("APPLE_HEALTH_EXPORT_PATH", "")
    monkeypatch.setenv("METRICS_JSON_PATH", "")
    monkeypatch.setenv("DB_PATH", str(tmp_path / "scores.db"))
    monkeypatch.setenv("LEGACY_HISTORY_PATH", str(tmp_path / "score_history.json"))
    monkeypatch.setenv("RETENTION_DAYS", "0")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from vitalscore.domains.health.domain_logic.models import (  # noqa: E402
    Biomarker,
    DailyMetrics,
)


# ---------------------------------------------------------------------------
# Metrics helpers
# ---------------------------------------------------------------------------

def make_metrics(day: date, **overrides) -> DailyMetrics:
    """A solid, unremarkable day: 7.5h asleep, 10 min to fall asleep, 22:30 bedtime."""
    bedtime = datetime.combine(day - timedelta(days=1), datetime.min.time()) + timedelta(
        hours=22, minutes=30
    )
    fields = {
        "hrv": 55.0,
        "rhr": 58.0,
        "respiratory_rate": 14.0,
        "walking_heart_rate": 95.0,
        "oxygen_saturation": 97.0,
        "sleep_duration": 7.5 * 3600,
        "time_in_bed": 7.5 * 3600 + 600,
        "deep_sleep": 0.18 * 7.5 * 3600,
        "rem_sleep": 0.22 * 7.5 * 3600,
        "bedtime": bedtime,
        "wake_time": bedtime + timedelta(hours=7, minutes=40),
    }
    fields.update(overrides)
    return DailyMetrics(date=day, **fields)


def make_history(end: date, days: int, **overrides) -> list[DailyMetrics]:
    """``days`` consecutive days of ``make_metrics`` ending on ``end``."""
    return [make_metrics(end - timedelta(days=offset), **overrides) for offset in range(days)]


class CountingMetricsSource:
    """In-memory MetricsSource that counts calls.

    ``gate`` (an asyncio.Event) holds every ``fetch`` until it is set, so a
    test can issue concurrent loads while the first is still in flight.
    """

    def __init__(self, metrics=(), *, fail_fetch: bool = False) -> None:
        self._by_day = {m.date: m for m in metrics}
        self.fail_fetch = fail_fetch
        self.gate: asyncio.Event | None = None
        self.fetch_calls: Counter = Counter()
        self.series_calls: list[tuple[Biomarker, date]] = []

    def add(self, metrics: DailyMetrics) -> None:
        self._by_day[metrics.date] = metrics

    @property
    def total_fetches(self) -> int:
        return sum(self.fetch_calls.values())

    async def fetch(self, day: date) -> DailyMetrics | None:
        self.fetch_calls[day] += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_fetch:
            raise OSError("metrics store unavailable")
        return self._by_day.get(day)

    async def fetch_series(self, biomarker: Biomarker, day: date) -> float | None:
        self.series_calls.append((biomarker, day))
        metrics = self._by_day.get(day)
        return metrics.value(biomarker) if metrics else None

    def is_connected(self) -> bool:
        return True

    @property
    def data_source(self) -> str:
        return "counting"


@pytest.fixture
def target_day() -> date:
    return date(2026, 3, 14)


@pytest.fixture
def counting_source(target_day: date) -> CountingMetricsSource:
    """60 days of history plus the target day itself."""
    return CountingMetricsSource(make_history(target_day, 61))


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def health_db():
    """Create an in-memory HealthDatabase for testing."""
    from vitalscore.core.storage.database import HealthDatabase

    db = HealthDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def field_encryptor():
    """Create a FieldEncryptor with a test key."""
    from vitalscore.core.storage.encryption import FieldEncryptor

    return FieldEncryptor(FieldEncryptor.generate_key())


@pytest.fixture
def audit_logger(health_db):
    """Create an AuditLogger backed by in-memory SQLite."""
    from vitalscore.core.audit.logger import AuditLogger

    return AuditLogger(health_db)


@pytest.fixture
def score_store(health_db, field_encryptor, audit_logger):
    """Create a ScoreHistoryStore backed by in-memory SQLite."""
    from vitalscore.core.storage.score_history import ScoreHistoryStore

    return ScoreHistoryStore(health_db, field_encryptor, audit_logger)
