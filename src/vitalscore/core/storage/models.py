"""Data models for the score persistence layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


def day_key(value: date | datetime | str) -> str:
    """Normalize a day to its ``YYYY-MM-DD`` key in local time.

    Aware datetimes are converted to the local timezone first, so a
    timestamp late in the evening UTC maps to the user's calendar day.
    """
    if isinstance(value, str):
        return date.fromisoformat(value[:10]).isoformat()
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.date().isoformat()
    return value.isoformat()


class ScoreType(str, Enum):
    """The closed set of composite scores the pipeline produces."""

    RECOVERY = "recovery"
    SLEEP = "sleep"


@dataclass(frozen=True)
class PersistedScore:
    """A composite score saved together with the baseline it was computed from.

    The baseline snapshot is kept in its canonical dict form (see
    ``BaselineSnapshot.to_dict``) and is stored encrypted at rest. The final
    score stays unencrypted for indexed date-range queries.
    """

    date: str  # YYYY-MM-DD, local calendar day
    score_type: ScoreType
    final_score: int
    baseline_snapshot: dict[str, Any] = field(default_factory=dict)
    calculated_at: str = ""  # ISO 8601

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "score_type": self.score_type.value,
            "final_score": self.final_score,
            "baseline_snapshot": self.baseline_snapshot,
            "calculated_at": self.calculated_at,
        }
