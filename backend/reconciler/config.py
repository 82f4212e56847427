"""
Reconciler service configuration.
Uses the LS_RECONCILER_ prefix; Redis/DB come from the shared get_settings().
"""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReconcilerSettings(BaseSettings):
    """Worker intervals, batch caps and windows for the reconciliation engine."""

    model_config = SettingsConfigDict(
        env_prefix="LS_RECONCILER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Minute worker
    minute_interval_s: float = Field(default=30.0, description="Seconds between minute worker ticks")
    minute_batch_size: int = Field(default=100, description="Max matches selected per minute tick")
    push_recency_window_s: int = Field(
        default=5, description="Skip recomputation when the push ingester touched the match this recently"
    )

    # Completeness validator
    validator_interval_s: float = Field(default=300.0, description="Seconds between validator ticks")
    validator_batch_size: int = Field(default=50, description="Max ended matches repaired per tick")
    validator_lookback_s: int = Field(default=24 * 3600, description="Only ended matches scheduled this recently")

    # Lifecycle listener
    lifecycle_enabled: bool = Field(default=True, description="Consume phase-change messages from Redis")
    phase_changes_channel: str = Field(default="lifecycle:phase_changes", description="Pub/sub channel carrying phase transitions")

    # Metrics
    metrics_port: int = Field(default=9092, description="Port for the Prometheus metrics server")


def get_reconciler_settings() -> ReconcilerSettings:
    """Load reconciler settings. Call get_settings() for Redis/DB."""
    return ReconcilerSettings()
