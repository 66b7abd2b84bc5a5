"""Apple Health XML export parser.

Parses the ``export.xml`` file produced by Apple Health (iOS → Share → Export
Health Data) into one ``DailyMetrics`` per calendar day. Uses iterparse so
multi-gigabyte exports stay out of memory.

HealthKit type mappings:
- HKQuantityTypeIdentifierHeartRateVariabilitySDNN → hrv
- HKQuantityTypeIdentifierRestingHeartRate → rhr
- HKQuantityTypeIdentifierRespiratoryRate → respiratory_rate
- HKQuantityTypeIdentifierWalkingHeartRateAverage → walking_heart_rate
- HKQuantityTypeIdentifierOxygenSaturation → oxygen_saturation (fraction → %)
- HKCategoryTypeIdentifierSleepAnalysis → sleep session fields

Quantity readings are averaged per day of their start date (in the
record's own UTC offset). Sleep samples belong to the night whose wake
day they end on: anything ending between noon of the previous day and
noon of day D is attributed to D.
"""

from __future__ import annotations

import logging
import statistics
import xml.etree.ElementTree as ET
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path

from vitalscore.domains.health.domain_logic.models import DailyMetrics

logger = logging.getLogger(__name__)

_HRV = "HKQuantityTypeIdentifierHeartRateVariabilitySDNN"
_RHR = "HKQuantityTypeIdentifierRestingHeartRate"
_RESP = "HKQuantityTypeIdentifierRespiratoryRate"
_WALKING_HR = "HKQuantityTypeIdentifierWalkingHeartRateAverage"
_SPO2 = "HKQuantityTypeIdentifierOxygenSaturation"

_SLEEP = "HKCategoryTypeIdentifierSleepAnalysis"

_QUANTITY_FIELDS = {
    _HRV: "hrv",
    _RHR: "rhr",
    _RESP: "respiratory_rate",
    _WALKING_HR: "walking_heart_rate",
    _SPO2: "oxygen_saturation",
}

_IN_BED = "HKCategoryValueSleepAnalysisInBed"
_AWAKE = "HKCategoryValueSleepAnalysisAwake"
_DEEP = "HKCategoryValueSleepAnalysisAsleepDeep"
_REM = "HKCategoryValueSleepAnalysisAsleepREM"


class AppleHealthParseError(Exception):
    """Raised when parsing Apple Health export XML fails."""


def _parse_date(date_str: str) -> datetime:
    """Parse Apple Health date format: '2026-03-14 08:30:00 -0500'."""
    try:
        return datetime.strptime(date_str, "%Y-%m-%d %H:%M:%S %z")
    except ValueError:
        return datetime.fromisoformat(date_str)


def sleep_night_for(end: datetime) -> date:
    """Wake day a sleep sample ending at ``end`` is attributed to."""
    return (end - timedelta(hours=12)).date() + timedelta(days=1)


@dataclass
class _Night:
    in_bed: float = 0.0
    asleep: float = 0.0
    deep: float = 0.0
    rem: float = 0.0
    start: datetime | None = None
    end: datetime | None = None
    sleep_start: datetime | None = None

    def add(self, value: str, start: datetime, end: datetime) -> None:
        seconds = max(0.0, (end - start).total_seconds())
        self.start = start if self.start is None else min(self.start, start)
        self.end = end if self.end is None else max(self.end, end)
        if value == _IN_BED:
            self.in_bed += seconds
        elif value == _AWAKE:
            return
        else:
            self.asleep += seconds
            self.sleep_start = start if self.sleep_start is None else min(self.sleep_start, start)
            if value == _DEEP:
                self.deep += seconds
            elif value == _REM:
                self.rem += seconds

    @property
    def time_in_bed(self) -> float:
        """Recorded in-bed time, or the session span when no InBed samples exist."""
        if self.in_bed > 0:
            return self.in_bed
        if self.start is not None and self.end is not None:
            return (self.end - self.start).total_seconds()
        return 0.0


@dataclass
class _DayReadings:
    quantities: dict[str, list[float]] = field(default_factory=lambda: defaultdict(list))


def parse_apple_health_export(
    export_path: str | Path,
    since: date | None = None,
) -> dict[date, DailyMetrics]:
    """Parse an Apple Health export.xml into per-day metrics.

    Args:
        export_path: Path to the Apple Health export.xml file.
        since: Ignore records dated before this day.

    Returns:
        Mapping of calendar day to its ``DailyMetrics``.

    Raises:
        AppleHealthParseError: If the file is missing or is not valid XML.
    """
    path = Path(export_path).expanduser()
    if not path.exists():
        raise AppleHealthParseError(f"Export file not found: {path}")

    days: dict[date, _DayReadings] = defaultdict(_DayReadings)
    nights: dict[date, _Night] = defaultdict(_Night)
    record_count = 0

    try:
        for _event, elem in ET.iterparse(str(path), events=("end",)):
            if elem.tag != "Record":
                continue

            rec_type = elem.get("type", "")
            start_str = elem.get("startDate", "")
            try:
                if rec_type in _QUANTITY_FIELDS and start_str:
                    start = _parse_date(start_str)
                    value_str = elem.get("value", "")
                    if value_str and (since is None or start.date() >= since):
                        value = float(value_str)
                        if rec_type == _SPO2 and value <= 1.0:
                            value *= 100
                        days[start.date()].quantities[_QUANTITY_FIELDS[rec_type]].append(value)
                        record_count += 1

                elif rec_type == _SLEEP and start_str and elem.get("endDate"):
                    start = _parse_date(start_str)
                    end = _parse_date(elem.get("endDate", ""))
                    night = sleep_night_for(end)
                    if since is None or night >= since:
                        nights[night].add(elem.get("value", ""), start, end)
                        record_count += 1
            except (ValueError, TypeError):
                logger.debug("Skipping malformed %s record", rec_type)

            elem.clear()

    except ET.ParseError as exc:
        raise AppleHealthParseError(f"Invalid XML: {exc}") from exc

    result: dict[date, DailyMetrics] = {}
    for day in sorted(set(days) | set(nights)):
        quantities = days[day].quantities if day in days else {}
        means = {name: statistics.mean(vals) for name, vals in quantities.items() if vals}
        night = nights.get(day)
        has_sleep = night is not None and night.asleep > 0

        result[day] = DailyMetrics(
            date=day,
            hrv=means.get("hrv"),
            rhr=means.get("rhr"),
            respiratory_rate=means.get("respiratory_rate"),
            walking_heart_rate=means.get("walking_heart_rate"),
            oxygen_saturation=means.get("oxygen_saturation"),
            sleep_duration=night.asleep if has_sleep else None,
            time_in_bed=max(night.time_in_bed, night.asleep) if has_sleep else None,
            deep_sleep=night.deep if has_sleep else None,
            rem_sleep=night.rem if has_sleep else None,
            bedtime=night.start if has_sleep else None,
            wake_time=night.end if has_sleep else None,
        )

    logger.info(
        "Parsed Apple Health export: %d records into %d days", record_count, len(result)
    )
    return result
