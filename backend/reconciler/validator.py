"""
Completeness validator.
Watchdog for ended matches whose half-split markers never converged, e.g.
because the half-time or full-time transition was never observed.
"""
from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Any, Callable

from shared.models.domain import Completeness, HalfSplitRow
from shared.utils.logging import get_logger
from shared.utils.metrics import (
    TICK_BATCH_SIZE,
    TICK_DURATION,
    TICK_ERRORS,
    VALIDATOR_MATCHES,
)

from reconciler.config import ReconcilerSettings
from reconciler.half_split import HalfSplitPersistence
from reconciler.store import MatchStateStore

logger = get_logger(__name__)

WORKER_NAME = "validator"


@dataclass
class ValidatorTickSummary:
    scanned: int = 0
    repaired: int = 0
    unchanged: int = 0
    failed: int = 0
    elapsed_ms: int = 0
    selection_failed: bool = False

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class CompletenessValidator:
    def __init__(
        self,
        store: MatchStateStore,
        half_split: HalfSplitPersistence,
        settings: ReconcilerSettings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._half_split = half_split
        self._settings = settings
        self._clock = clock

    async def tick(self) -> ValidatorTickSummary:
        started = time.perf_counter()
        summary = ValidatorTickSummary()
        since = int(self._clock()) - self._settings.validator_lookback_s

        try:
            rows = await self._store.fetch_incomplete_ended(since, self._settings.validator_batch_size)
        except Exception as exc:
            summary.selection_failed = True
            TICK_ERRORS.labels(worker=WORKER_NAME).inc()
            logger.exception("validator_tick_select_failed", error=str(exc))
            return self._finish(summary, started)

        TICK_BATCH_SIZE.labels(worker=WORKER_NAME).set(len(rows))

        for row in rows:
            summary.scanned += 1
            try:
                repaired = await self.repair(row)
            except Exception as exc:
                summary.failed += 1
                VALIDATOR_MATCHES.labels(result="failed").inc()
                logger.warning("validator_repair_failed", match_id=row.match_id, error=str(exc))
                continue
            if repaired:
                summary.repaired += 1
                VALIDATOR_MATCHES.labels(result="repaired").inc()
            else:
                summary.unchanged += 1
                VALIDATOR_MATCHES.labels(result="unchanged").inc()

        return self._finish(summary, started)

    async def repair(self, row: HalfSplitRow) -> bool:
        """Run whichever captures are still missing. True if anything was written."""
        completeness = Completeness.from_raw(row.completeness)
        repaired = False
        if not completeness.first_half_captured:
            result = await self._half_split.capture_first_half(row.match_id)
            repaired = repaired or result.captured
        if not completeness.full_time_captured:
            result = await self._half_split.capture_second_half(row.match_id)
            repaired = repaired or result.captured
        if repaired:
            logger.info("validator_match_repaired", match_id=row.match_id)
        return repaired

    def _finish(self, summary: ValidatorTickSummary, started: float) -> ValidatorTickSummary:
        elapsed = time.perf_counter() - started
        summary.elapsed_ms = int(elapsed * 1000)
        TICK_DURATION.labels(worker=WORKER_NAME).observe(elapsed)
        logger.info("validator_tick_completed", **summary.as_dict())
        return summary
