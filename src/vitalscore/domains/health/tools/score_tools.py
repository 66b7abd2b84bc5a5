"""MCP tools over the health stats hub (daily scores, refresh, cache)."""

from __future__ import annotations

import json
import logging
import time
from datetime import date
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from vitalscore.core.storage.score_history import PersistenceError
from vitalscore.domains.health.domain_logic.insights import recovery_insight, sleep_insight
from vitalscore.domains.health.domain_logic.models import CacheEntry

if TYPE_CHECKING:
    from vitalscore.core.audit.logger import AuditLogger
    from vitalscore.domains.health.hub import HealthStatsHub

logger = logging.getLogger(__name__)


def parse_day(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` tool argument; empty means today.

    Raises:
        ValueError: If ``value`` is not an ISO date.
    """
    if not value:
        return date.today()
    return date.fromisoformat(value)


def entry_payload(entry: CacheEntry) -> dict[str, Any]:
    """Serialize a cache entry together with its insights."""
    payload = entry.to_dict()
    insights: dict[str, Any] = {"recovery": None, "sleep": None}
    if entry.recovery is not None:
        insights["recovery"] = recovery_insight(entry.recovery).to_dict()
    if entry.raw_data is not None:
        night = sleep_insight(entry.raw_data)
        insights["sleep"] = night.to_dict() if night else None
    payload["insights"] = insights
    return payload


def register_score_tools(
    mcp: FastMCP,
    hub: HealthStatsHub,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register daily score tools on the MCP server."""

    def _audit(tool_name: str, tool_input: Any, start: float, status: str = "success") -> None:
        if audit_logger is not None:
            audit_logger.log_tool_call(
                tool_name,
                tool_input,
                duration_ms=round((time.monotonic() - start) * 1000, 1),
                status=status,
            )

    def _respond(entry: CacheEntry | None, day: str) -> str:
        state = hub.state(day)
        if entry is None:
            error = hub.last_error(day)
            return json.dumps({
                "status": "error",
                "state": state.value,
                "date": day,
                "message": f"Score computation failed: {type(error).__name__ if error else 'unknown'}",
            })
        payload = entry_payload(entry)
        payload["status"] = "ok" if entry.raw_data is not None else "no_data"
        payload["state"] = state.value
        return json.dumps(payload, indent=2)

    @mcp.tool
    async def load_scores(
        ctx: Context,
        day: str = "",
    ) -> str:
        """Compute (or serve from cache) Recovery and Sleep scores for a day.

        Results include the component breakdown, the personal baseline used,
        7-day trends and a plain-language insight for each score. Days
        without recorded data return status 'no_data' rather than an error.

        Args:
            day: Day as YYYY-MM-DD (default: today).
        """
        start = time.monotonic()
        try:
            target = parse_day(day)
        except ValueError:
            return json.dumps({"status": "error", "message": f"Invalid date: {day!r}"})

        entry = await hub.load_data(target)
        _audit("load_scores", {"day": target.isoformat()}, start,
               "success" if entry is not None else "failure")
        return _respond(entry, target.isoformat())

    @mcp.tool
    async def refresh_scores(ctx: Context) -> str:
        """Discard the cached scores for the displayed day and recompute them."""
        start = time.monotonic()
        displayed = hub.displayed_date
        if displayed is None:
            return json.dumps({
                "status": "idle",
                "message": "No day loaded yet. Call load_scores first.",
            })
        entry = await hub.refresh()
        _audit("refresh_scores", {"day": displayed}, start,
               "success" if entry is not None else "failure")
        return _respond(entry, displayed)

    @mcp.tool
    async def clear_score_cache(ctx: Context) -> str:
        """Drop every cached score computation."""
        hub.clear_cache()
        return json.dumps({"status": "cleared"})

    @mcp.tool
    async def save_scores(
        ctx: Context,
        day: str = "",
    ) -> str:
        """Save a day's Recovery and Sleep scores to the score history.

        The baseline snapshot used for each score is stored alongside it
        (encrypted), so a saved score can always be reproduced.

        Args:
            day: Day as YYYY-MM-DD (default: today).
        """
        if hub.store is None:
            return json.dumps({
                "status": "error",
                "message": "Score history is disabled. Set ENCRYPTION_KEY to enable it.",
            })
        start = time.monotonic()
        try:
            target = parse_day(day)
        except ValueError:
            return json.dumps({"status": "error", "message": f"Invalid date: {day!r}"})

        try:
            saved = await hub.save_scores(target, tool_name="save_scores")
        except PersistenceError as exc:
            logger.error("Saving scores for %s failed: %s", target, exc)
            _audit("save_scores", {"day": target.isoformat()}, start, "failure")
            return json.dumps({
                "status": "error",
                "message": "Could not write to the score history. Please try again.",
            })

        _audit("save_scores", {"day": target.isoformat()}, start)
        return json.dumps({
            "status": "saved" if saved else "nothing_to_save",
            "date": target.isoformat(),
            "scores": [
                {"score_type": s.score_type.value, "final_score": s.final_score}
                for s in saved
            ],
        })
