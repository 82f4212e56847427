"""
Lightweight metrics collection for Live State.
Prometheus counters, histograms and gauges for the reconciler workers.
"""
from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Info, start_http_server

from shared.config import get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
MINUTE_WRITES = Counter(
    "ls_minute_writes_total",
    "Conditional minute writes by result",
    ["result"],
)
MINUTE_SKIPS = Counter(
    "ls_minute_skips_total",
    "Matches skipped by the minute worker",
    ["reason"],
)
MINUTE_BROADCASTS = Counter(
    "ls_minute_broadcasts_total",
    "Minute change notifications by result",
    ["result"],
)
HALF_CAPTURES = Counter(
    "ls_half_captures_total",
    "Half-split capture attempts by half and outcome",
    ["half", "outcome"],
)
VALIDATOR_MATCHES = Counter(
    "ls_validator_matches_total",
    "Matches handled by the completeness validator",
    ["result"],
)
TICKS_SKIPPED = Counter(
    "ls_worker_ticks_skipped_total",
    "Ticks skipped because the previous tick was still running",
    ["worker"],
)
TICK_ERRORS = Counter(
    "ls_worker_tick_errors_total",
    "Ticks aborted by a batch-level failure",
    ["worker"],
)

# ── Histograms ──────────────────────────────────────────────────────────
TICK_DURATION = Histogram(
    "ls_worker_tick_seconds",
    "Wall time of one worker tick",
    ["worker"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# ── Gauges ──────────────────────────────────────────────────────────────
TICK_BATCH_SIZE = Gauge(
    "ls_worker_tick_batch_size",
    "Rows selected by the last tick",
    ["worker"],
)

# ── Info ────────────────────────────────────────────────────────────────
SERVICE_INFO = Info("ls_service", "Service build information")


def start_metrics_server(port: int | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = get_settings()
    if not settings.metrics_enabled:
        return
    metrics_port = port or settings.metrics_port
    try:
        start_http_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=metrics_port)
