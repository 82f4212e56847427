"""
Minute update worker.

Each tick selects matches in the active phases, recomputes the display minute
and writes it back with a compare-and-set on the previously read value. A
successful write is broadcast. The tick never raises: per-match failures are
logged and counted, and a failed batch selection ends the tick early.
"""
from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Optional

from shared.models.domain import MinuteCandidate, MinuteChange
from shared.models.enums import MINUTE_ACTIVE_PHASES, MatchPhase
from shared.utils.logging import get_logger
from shared.utils.metrics import (
    MINUTE_SKIPS,
    MINUTE_WRITES,
    TICK_BATCH_SIZE,
    TICK_DURATION,
    TICK_ERRORS,
)

from reconciler.broadcaster import ChangeBroadcaster
from reconciler.config import ReconcilerSettings
from reconciler.minute import calculate, resolve_first_half_start
from reconciler.store import MatchStateStore

logger = get_logger(__name__)

WORKER_NAME = "minute"

# Per-match outcomes
UPDATED = "updated"
UNCHANGED = "unchanged"
UNKNOWN = "unknown"
RECENT_PUSH = "recent_push"
REGRESSION = "regression"
CONFLICT = "conflict"


@dataclass
class MinuteTickSummary:
    processed: int = 0
    updated: int = 0
    skipped: int = 0
    skipped_recent: int = 0
    conflicts: int = 0
    failed: int = 0
    elapsed_ms: int = 0
    selection_failed: bool = False

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class MinuteUpdateWorker:
    """Recomputes stored minutes for live matches."""

    def __init__(
        self,
        store: MatchStateStore,
        broadcaster: ChangeBroadcaster,
        settings: ReconcilerSettings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._broadcaster = broadcaster
        self._settings = settings
        self._clock = clock

    async def tick(self) -> MinuteTickSummary:
        started = time.perf_counter()
        now = int(self._clock())
        summary = MinuteTickSummary()

        try:
            candidates = await self._store.fetch_minute_candidates(
                MINUTE_ACTIVE_PHASES, self._settings.minute_batch_size
            )
        except Exception as exc:
            summary.selection_failed = True
            TICK_ERRORS.labels(worker=WORKER_NAME).inc()
            logger.exception("minute_tick_select_failed", error=str(exc))
            return self._finish(summary, started)

        TICK_BATCH_SIZE.labels(worker=WORKER_NAME).set(len(candidates))

        for candidate in candidates:
            summary.processed += 1
            try:
                outcome = await self.process(candidate, now)
            except Exception as exc:
                summary.failed += 1
                MINUTE_WRITES.labels(result="error").inc()
                logger.warning(
                    "minute_update_failed",
                    match_id=candidate.match_id,
                    phase=candidate.phase,
                    error=str(exc),
                )
                continue

            if outcome == UPDATED:
                summary.updated += 1
            elif outcome == RECENT_PUSH:
                summary.skipped_recent += 1
            elif outcome == CONFLICT:
                summary.conflicts += 1
            else:
                summary.skipped += 1

        return self._finish(summary, started)

    async def process(self, candidate: MinuteCandidate, now: int) -> str:
        """Recompute and conditionally write one match. Returns the outcome name."""
        last_push = candidate.last_push_ts
        if last_push is not None and now - last_push < self._settings.push_recency_window_s:
            MINUTE_SKIPS.labels(reason=RECENT_PUSH).inc()
            return RECENT_PUSH

        phase = MatchPhase.parse(candidate.phase)
        first_half_start = resolve_first_half_start(
            candidate.first_half_start_ts,
            candidate.live_kickoff_ts,
            candidate.scheduled_ts,
        )
        new_minute = calculate(
            phase,
            first_half_start,
            candidate.second_half_start_ts,
            candidate.overtime_start_ts,
            candidate.minute,
            now,
        )

        # None means "cannot tell"; keep whatever is stored.
        if new_minute is None or phase is None:
            MINUTE_SKIPS.labels(reason=UNKNOWN).inc()
            return UNKNOWN
        if new_minute == candidate.minute:
            MINUTE_SKIPS.labels(reason=UNCHANGED).inc()
            return UNCHANGED
        if phase.is_running and candidate.minute is not None and new_minute < candidate.minute:
            MINUTE_SKIPS.labels(reason=REGRESSION).inc()
            logger.debug(
                "minute_regression_ignored",
                match_id=candidate.match_id,
                stored=candidate.minute,
                computed=new_minute,
            )
            return REGRESSION

        written = await self._store.compare_and_set_minute(
            candidate.match_id, candidate.minute, new_minute, now
        )
        if not written:
            MINUTE_WRITES.labels(result=CONFLICT).inc()
            logger.debug("minute_write_conflict", match_id=candidate.match_id, expected=candidate.minute)
            return CONFLICT

        MINUTE_WRITES.labels(result=UPDATED).inc()
        logger.debug(
            "minute_updated",
            match_id=candidate.match_id,
            phase=phase.value,
            previous=candidate.minute,
            minute=new_minute,
        )
        await self._broadcaster.publish(
            MinuteChange(
                match_id=candidate.match_id,
                minute=new_minute,
                phase=phase,
                previous_minute=candidate.minute,
            )
        )
        return UPDATED

    def _finish(self, summary: MinuteTickSummary, started: float) -> MinuteTickSummary:
        elapsed = time.perf_counter() - started
        summary.elapsed_ms = int(elapsed * 1000)
        TICK_DURATION.labels(worker=WORKER_NAME).observe(elapsed)
        logger.info("minute_tick_completed", **summary.as_dict())
        return summary
