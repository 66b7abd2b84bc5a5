"""Mock daily metrics for development and testing.

All mock data represents a median healthy adult: not in crisis, not
perfectly optimized. Values wobble day to day around fixed centers, and
the wobble is seeded by the date so the same day always yields the same
readings.
"""

from __future__ import annotations

import random
from datetime import date, datetime, time, timedelta

from vitalscore.domains.health.domain_logic.models import DailyMetrics

# Centers of the synthetic distributions
MOCK_HRV_MS = 48.0
MOCK_RHR_BPM = 60.0
MOCK_RESPIRATORY_RATE = 14.5
MOCK_WALKING_HR_BPM = 98.0
MOCK_SPO2_PCT = 97.0
MOCK_SLEEP_HOURS = 7.3
MOCK_BEDTIME = time(22, 45)


def get_mock_daily_metrics(day: date) -> DailyMetrics:
    """Return deterministic synthetic readings for ``day``."""
    rng = random.Random(day.toordinal())

    asleep = (MOCK_SLEEP_HOURS + rng.uniform(-0.8, 0.8)) * 3600
    latency = rng.uniform(5, 25) * 60
    awake_in_bed = rng.uniform(10, 30) * 60
    in_bed = asleep + latency + awake_in_bed

    bedtime = datetime.combine(day - timedelta(days=1), MOCK_BEDTIME) + timedelta(
        minutes=rng.uniform(-40, 40)
    )
    wake_time = bedtime + timedelta(seconds=in_bed)

    return DailyMetrics(
        date=day,
        hrv=round(MOCK_HRV_MS + rng.uniform(-9, 9), 1),
        rhr=round(MOCK_RHR_BPM + rng.uniform(-4, 4), 1),
        respiratory_rate=round(MOCK_RESPIRATORY_RATE + rng.uniform(-1, 1), 1),
        walking_heart_rate=round(MOCK_WALKING_HR_BPM + rng.uniform(-6, 6), 1),
        oxygen_saturation=round(MOCK_SPO2_PCT + rng.uniform(-1.5, 1.5), 1),
        sleep_duration=round(asleep),
        time_in_bed=round(in_bed),
        deep_sleep=round(asleep * rng.uniform(0.13, 0.22)),
        rem_sleep=round(asleep * rng.uniform(0.18, 0.26)),
        bedtime=bedtime,
        wake_time=wake_time,
    )
