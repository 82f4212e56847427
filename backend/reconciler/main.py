"""
Reconciler service entrypoint.
Runs the minute worker, the completeness validator and the lifecycle listener
until SIGTERM/SIGINT.
"""
from __future__ import annotations

import asyncio
import signal
import sys
from pathlib import Path
from typing import Any

# Ensure backend root is on path when run as python -m reconciler.main
_backend = Path(__file__).resolve().parent.parent
if str(_backend) not in sys.path:
    sys.path.insert(0, str(_backend))

from shared.config import get_settings
from shared.utils.database import DatabaseManager
from shared.utils.health_server import start_health_server
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import SERVICE_INFO, start_metrics_server
from shared.utils.redis_manager import RedisManager

from reconciler.broadcaster import build_broadcaster
from reconciler.config import get_reconciler_settings
from reconciler.half_split import HalfSplitPersistence
from reconciler.lifecycle import LifecycleListener
from reconciler.minute_worker import MinuteUpdateWorker
from reconciler.periodic import PeriodicJob
from reconciler.store import MatchStateStore
from reconciler.validator import CompletenessValidator

logger = get_logger(__name__)


async def main() -> None:
    setup_logging("reconciler")
    settings = get_settings()
    reconciler_settings = get_reconciler_settings()

    db = DatabaseManager(settings)
    redis = RedisManager(settings)

    try:
        await db.connect()
        await redis.connect()
    except Exception as e:
        logger.exception("startup_connect_failed", error=str(e))
        raise

    SERVICE_INFO.info({"service": "reconciler", "environment": settings.environment.value})
    start_metrics_server(reconciler_settings.metrics_port)

    store = MatchStateStore(db)
    half_split = HalfSplitPersistence(store)
    minute_job = PeriodicJob(
        "minute",
        MinuteUpdateWorker(store, build_broadcaster(redis), reconciler_settings).tick,
        reconciler_settings.minute_interval_s,
    )
    validator_job = PeriodicJob(
        "validator",
        CompletenessValidator(store, half_split, reconciler_settings).tick,
        reconciler_settings.validator_interval_s,
    )
    jobs = [minute_job, validator_job]

    def status() -> dict[str, Any]:
        return {job.name: job.status() for job in jobs}

    start_health_server("reconciler", status)

    shutdown = asyncio.Event()

    def on_signal() -> None:
        shutdown.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            asyncio.get_running_loop().add_signal_handler(sig, on_signal)
        except NotImplementedError:
            pass

    tasks = [asyncio.create_task(job.start(shutdown)) for job in jobs]
    if reconciler_settings.lifecycle_enabled:
        listener = LifecycleListener(half_split, redis, reconciler_settings.phase_changes_channel)
        tasks.append(asyncio.create_task(listener.run(shutdown)))

    logger.info(
        "reconciler_started",
        minute_interval_s=reconciler_settings.minute_interval_s,
        validator_interval_s=reconciler_settings.validator_interval_s,
        lifecycle_enabled=reconciler_settings.lifecycle_enabled,
    )
    await shutdown.wait()

    await asyncio.gather(*tasks, return_exceptions=True)
    for job in jobs:
        await job.drain()

    await redis.disconnect()
    await db.disconnect()
    logger.info("reconciler_stopped")


if __name__ == "__main__":
    asyncio.run(main())
