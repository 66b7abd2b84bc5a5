"""VitalScore MCP server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from vitalscore.core.audit.logger import AuditLogger
from vitalscore.core.config.settings import get_settings
from vitalscore.core.storage.database import HealthDatabase
from vitalscore.core.storage.encryption import EncryptionError, FieldEncryptor
from vitalscore.core.storage.score_history import PersistenceError, ScoreHistoryStore
from vitalscore.domains.health.connectors import MetricsSource
from vitalscore.domains.health.connectors.apple_health import AppleHealthMetricsSource
from vitalscore.domains.health.connectors.composite import CompositeMetricsSource
from vitalscore.domains.health.connectors.providers import MockMetricsSource, StaticMetricsSource
from vitalscore.domains.health.hub import HealthStatsHub
from vitalscore.domains.health.tools.score_tools import register_score_tools

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def create_app(
    *,
    metrics_source_override: MetricsSource | None = None,
    store_override: ScoreHistoryStore | None = None,
    audit_logger_override: AuditLogger | None = None,
) -> FastMCP:
    """Create and configure the VitalScore MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Builds the metrics source (Apple Health export first, mock fallback)
    3. Initializes the encrypted score history and runs the legacy import
    4. Creates the health stats hub
    5. Registers all tools
    """
    settings = get_settings()

    server = FastMCP(
        "VitalScore Health",
        instructions=(
            "Baseline-relative Recovery and Sleep scores. Load a day to get "
            "both scores with component breakdowns, personal baselines, "
            "short-term trends and plain-language insights; save days to "
            "build a score history."
        ),
    )

    # --- Metrics source ---
    if metrics_source_override is not None:
        source = metrics_source_override
    else:
        sources: list[MetricsSource] = []
        if settings.apple_health_export_path:
            sources.append(AppleHealthMetricsSource(settings.apple_health_export_path))
        if settings.metrics_json_path:
            try:
                sources.append(StaticMetricsSource.from_json(settings.metrics_json_path))
            except (OSError, ValueError, KeyError, TypeError) as exc:
                logger.error("Failed to load metrics JSON %s: %s", settings.metrics_json_path, exc)
        if not sources:
            # Synthetic data only when no real source is configured
            sources.append(MockMetricsSource())
        source = CompositeMetricsSource(sources)
        logger.info("Metrics source priority: %s", source.describe()["priority"])

    # --- Encrypted score history ---
    store: ScoreHistoryStore | None = None
    audit_logger: AuditLogger | None = audit_logger_override
    if store_override is not None:
        store = store_override
    elif settings.encryption_key:
        try:
            encryptor = FieldEncryptor(settings.encryption_key)
            score_db = HealthDatabase(settings.db_path)
            score_db.initialize()
            audit_logger = audit_logger or AuditLogger(score_db)
            store = ScoreHistoryStore(score_db, encryptor, audit_logger)
            logger.info(
                "Score history initialized: %s (schema v%d)",
                settings.db_path,
                score_db.get_schema_version(),
            )
        except EncryptionError as exc:
            logger.error("Failed to initialize storage: %s", exc)
            logger.warning("Continuing without persistence; scores will not be saved")
    else:
        logger.info(
            "No ENCRYPTION_KEY configured; running without score history. "
            "Set ENCRYPTION_KEY to enable it."
        )

    if store is not None and store_override is None:
        store.migrate_legacy(settings.legacy_history_path)
        if settings.retention_days > 0:
            try:
                store.purge_before_days(settings.retention_days)
            except PersistenceError as exc:
                logger.warning("Retention cleanup skipped: %s", exc)

    # --- Hub ---
    hub = HealthStatsHub.from_settings(source, settings, store=store)

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        status = {
            "status": "ok",
            "server": "VitalScore Health",
            "version": VERSION,
            "data_source": source.data_source,
            "storage_enabled": store is not None,
            "cache_ttl_seconds": settings.cache_ttl_seconds,
        }
        if store is not None:
            status["scores_stored"] = store.count()
        return status

    register_score_tools(server, hub, audit_logger)
    logger.info("Score tools registered")

    if store is not None:
        from vitalscore.domains.health.domain_logic.score_trends import ScoreTrendAnalyzer
        from vitalscore.domains.health.tools.history_tools import register_history_tools

        register_history_tools(server, store, ScoreTrendAnalyzer(store))
        logger.info("Score history tools registered")

    if audit_logger is not None:
        from vitalscore.domains.health.tools.audit_tools import register_audit_tools

        register_audit_tools(server, audit_logger)

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
