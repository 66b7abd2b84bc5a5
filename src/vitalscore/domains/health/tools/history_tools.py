"""MCP tools for the score history (queries, trends, deletion, retention).

Deletions implement the user's right to remove their own health data and
are audit-logged by the store.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import date
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from vitalscore.core.storage.models import ScoreType
from vitalscore.core.storage.score_history import PersistenceError

if TYPE_CHECKING:
    from vitalscore.core.storage.score_history import ScoreHistoryStore
    from vitalscore.domains.health.domain_logic.score_trends import ScoreTrendAnalyzer

logger = logging.getLogger(__name__)


def _score_type(value: str) -> ScoreType | None:
    try:
        return ScoreType(value.lower())
    except ValueError:
        return None


def _invalid(message: str) -> str:
    return json.dumps({"status": "error", "message": message})


def register_history_tools(
    mcp: FastMCP,
    store: ScoreHistoryStore,
    analyzer: ScoreTrendAnalyzer,
) -> None:
    """Register score history tools on the MCP server."""

    @mcp.tool
    async def score_history(
        ctx: Context,
        start: str,
        end: str,
        score_type: str = "recovery",
    ) -> str:
        """List saved scores between two days (inclusive), oldest first.

        Args:
            start: First day, YYYY-MM-DD.
            end: Last day, YYYY-MM-DD.
            score_type: 'recovery' or 'sleep'.
        """
        kind = _score_type(score_type)
        if kind is None:
            return _invalid(f"Unknown score_type: {score_type!r}")
        try:
            first, last = date.fromisoformat(start), date.fromisoformat(end)
        except ValueError:
            return _invalid("start and end must be YYYY-MM-DD dates.")
        if first > last:
            return _invalid("start must not be after end.")

        try:
            scores = store.get_range(first, last, kind)
        except PersistenceError as exc:
            logger.error("Score history query failed: %s", exc)
            return _invalid("Could not read the score history. Please try again.")

        return json.dumps({
            "status": "ok",
            "score_type": kind.value,
            "start": first.isoformat(),
            "end": last.isoformat(),
            "scores": [
                {
                    "date": s.date,
                    "final_score": s.final_score,
                    "calculated_at": s.calculated_at,
                }
                for s in scores
            ],
        }, indent=2)

    @mcp.tool
    async def score_trend(
        ctx: Context,
        score_type: str = "recovery",
        days: int = 30,
        end: str = "",
    ) -> str:
        """Summarize how a saved score has moved over recent days.

        Args:
            score_type: 'recovery' or 'sleep'.
            days: Window length in days (default: 30).
            end: Last day of the window, YYYY-MM-DD (default: today).
        """
        kind = _score_type(score_type)
        if kind is None:
            return _invalid(f"Unknown score_type: {score_type!r}")
        try:
            last = date.fromisoformat(end) if end else date.today()
        except ValueError:
            return _invalid(f"Invalid date: {end!r}")

        trend = analyzer.compute_score_trend(kind, end=last, days=days)
        divergence = analyzer.detect_divergence(end=last, days=days)
        return json.dumps({"status": "ok", "trend": trend, "divergence": divergence}, indent=2)

    @mcp.tool
    async def delete_score(
        ctx: Context,
        day: str,
        score_type: str,
    ) -> str:
        """Permanently delete one saved score.

        Args:
            day: Day of the score, YYYY-MM-DD.
            score_type: 'recovery' or 'sleep'.
        """
        kind = _score_type(score_type)
        if kind is None:
            return _invalid(f"Unknown score_type: {score_type!r}")
        try:
            target = date.fromisoformat(day)
        except ValueError:
            return _invalid(f"Invalid date: {day!r}")

        start_time = time.monotonic()
        try:
            deleted = store.delete(target, kind, tool_name="delete_score")
        except PersistenceError as exc:
            logger.error("Deleting %s score for %s failed: %s", kind.value, target, exc)
            return _invalid("Could not delete the score. Please try again.")
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if not deleted:
            return json.dumps({
                "status": "not_found",
                "date": target.isoformat(),
                "score_type": kind.value,
            })
        return json.dumps({
            "status": "deleted",
            "date": target.isoformat(),
            "score_type": kind.value,
            "duration_ms": round(elapsed_ms, 1),
        })

    @mcp.tool
    async def purge_old_scores(
        ctx: Context,
        older_than_days: int = 365,
    ) -> str:
        """Delete every saved score older than a number of days.

        Args:
            older_than_days: Delete scores older than this many days (default: 365).
        """
        if older_than_days < 1:
            return _invalid("older_than_days must be at least 1.")

        start_time = time.monotonic()
        try:
            count = store.purge_before_days(older_than_days, tool_name="purge_old_scores")
        except PersistenceError as exc:
            logger.error("Score purge failed: %s", exc)
            return _invalid("Could not purge old scores. Please try again.")
        elapsed_ms = (time.monotonic() - start_time) * 1000

        return json.dumps({
            "status": "purged",
            "scores_deleted": count,
            "older_than_days": older_than_days,
            "duration_ms": round(elapsed_ms, 1),
        })
