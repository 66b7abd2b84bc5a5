"""Reader for the legacy flat-file score history.

Older releases kept score history in a single ``score_history.json`` file:
a JSON array of ``{date, scoreType, score, baselineSnapshot, calculatedAt}``
objects. Dates in that file were written either as ISO 8601 strings or as
seconds since the Apple reference date (2001-01-01T00:00:00Z). This module
turns such a file into ``PersistedScore`` values for a one-time import.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from vitalscore.core.storage.models import PersistedScore, ScoreType, day_key

logger = logging.getLogger(__name__)

LEGACY_MIGRATION_NAME = "legacy_score_history_v1"

_APPLE_REFERENCE_DATE = datetime(2001, 1, 1, tzinfo=timezone.utc)

# Legacy baseline keys -> canonical biomarker names
_LEGACY_BASELINE_KEYS = {
    "hrv60": "hrv",
    "rhr60": "rhr",
    "sleepDuration90": "sleep_duration",
}
_LEGACY_TIME_KEYS = {
    "bedtime90": "bedtime",
    "wake90": "wake_time",
}


class MigrationError(Exception):
    """Raised when the legacy history file (or an entry in it) is unusable."""


def _parse_timestamp(value: Any) -> datetime:
    """Parse a legacy timestamp into an aware datetime."""
    if isinstance(value, bool):
        raise MigrationError(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return _APPLE_REFERENCE_DATE + timedelta(seconds=float(value))
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            raise MigrationError(f"Invalid timestamp: {value!r}") from exc
        if parsed.tzinfo is None:
            parsed = parsed.astimezone()
        return parsed
    raise MigrationError(f"Invalid timestamp: {value!r}")


def _seconds_from_midnight(moment: datetime) -> float:
    local = moment.astimezone()
    return float(local.hour * 3600 + local.minute * 60 + local.second)


def _convert_baseline(raw: Any, score_date: str, calculated_at: str) -> dict[str, Any]:
    """Map a legacy baseline snapshot onto the canonical snapshot dict."""
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise MigrationError("baselineSnapshot must be an object")
    if "values" in raw:
        # Already canonical (written by a newer exporter)
        return raw

    values: dict[str, float | None] = {}
    for legacy_key, name in _LEGACY_BASELINE_KEYS.items():
        value = raw.get(legacy_key)
        values[name] = float(value) if isinstance(value, (int, float)) else None
    for legacy_key, name in _LEGACY_TIME_KEYS.items():
        value = raw.get(legacy_key)
        values[name] = (
            _seconds_from_midnight(_parse_timestamp(value)) if value is not None else None
        )

    return {
        "date": score_date,
        "lookback_days": 60,
        "values": values,
        "sample_counts": {},
        "calculated_at": calculated_at,
    }


def parse_legacy_entry(raw: Any) -> PersistedScore:
    """Convert one legacy JSON object into a ``PersistedScore``.

    Raises:
        MigrationError: If a required field is missing or malformed.
    """
    if not isinstance(raw, dict):
        raise MigrationError("entry must be an object")

    try:
        score_type = ScoreType(raw.get("scoreType"))
    except ValueError as exc:
        raise MigrationError(f"Unknown scoreType: {raw.get('scoreType')!r}") from exc

    score = raw.get("score")
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise MigrationError(f"Invalid score: {score!r}")

    score_date = day_key(_parse_timestamp(raw.get("date")))
    calculated_raw = raw.get("calculatedAt")
    calculated_at = (
        _parse_timestamp(calculated_raw).isoformat()
        if calculated_raw is not None
        else datetime.now(timezone.utc).isoformat()
    )

    return PersistedScore(
        date=score_date,
        score_type=score_type,
        final_score=max(0, min(100, round(score))),
        baseline_snapshot=_convert_baseline(
            raw.get("baselineSnapshot"), score_date, calculated_at
        ),
        calculated_at=calculated_at,
    )


def read_legacy_history(path: str | Path) -> tuple[list[PersistedScore], int]:
    """Read every usable entry from a legacy history file.

    Individual malformed entries are skipped with a warning; a file that
    cannot be read or is not a JSON array fails as a whole.

    Returns:
        ``(scores, skipped_count)``

    Raises:
        MigrationError: If the file is unreadable or not a JSON array.
    """
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValueError) as exc:
        raise MigrationError(f"Cannot read legacy history {path}: {exc}") from exc

    if not isinstance(payload, list):
        raise MigrationError(f"Legacy history {path} is not a JSON array")

    scores: list[PersistedScore] = []
    skipped = 0
    for index, raw in enumerate(payload):
        try:
            scores.append(parse_legacy_entry(raw))
        except MigrationError as exc:
            skipped += 1
            logger.warning("Skipping legacy score entry %d: %s", index, exc)

    return scores, skipped
