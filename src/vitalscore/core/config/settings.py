"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """VitalScore server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default: the score server has no auth layer.
    vitalscore_host: str = "127.0.0.1"
    vitalscore_port: int = 8001
    vitalscore_log_level: str = "info"
    vitalscore_allow_insecure_bind: bool = False

    # Storage (score history)
    db_path: str = "~/.vitalscore/scores.db"
    legacy_history_path: str = "~/.vitalscore/score_history.json"
    retention_days: int = 0  # 0 keeps history forever

    # Encryption (baseline snapshots at rest)
    encryption_key: str = ""

    # Connectors
    apple_health_export_path: str = ""
    metrics_json_path: str = ""

    # Pipeline
    cache_ttl_seconds: float = 300.0
    baseline_lookback_days: int = 60  # HRV and RHR
    baseline_short_lookback_days: int = 14  # sleep timing and stress markers
    baseline_min_samples: int = 3
    trend_days: int = 7
    fetch_concurrency: int = 8


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
