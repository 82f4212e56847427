"""
Half-split persistence.

At half time the cumulative statistics are frozen as the first-half snapshot;
at full time the second half is derived by subtracting that snapshot from the
final cumulative values. Completeness markers record what has been captured
and are only ever set, never cleared.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

from shared.models.domain import (
    CaptureResult,
    Completeness,
    HalfSplitRow,
    HalfStats,
    HalfView,
    first_half_incidents,
    parse_statistics,
    second_half_incidents,
)
from shared.models.enums import CaptureOutcome
from shared.utils.logging import get_logger
from shared.utils.metrics import HALF_CAPTURES

from reconciler.store import MatchStateStore, SchemaCapabilities

logger = get_logger(__name__)

# A capture that loses a write race reloads the row and merges again.
MAX_CAPTURE_ATTEMPTS = 3


def unset_flags(raw_completeness: Any) -> list[str]:
    """Marker keys not yet true in the stored JSON."""
    raw = raw_completeness if isinstance(raw_completeness, dict) else {}
    return [key for key in Completeness.model_fields if not raw.get(key)]


def compute_second_half(
    full_statistics: Any,
    first_half_statistics: Any,
) -> tuple[list[dict[str, Any]], bool]:
    """
    Per-type `max(0, full - first_half)` over the types of full_statistics.

    Types present only in the first half are not emitted. Returns the entries
    and whether the result is an estimate: with no first-half snapshot the full
    values are returned as the second half.
    """
    full = parse_statistics(full_statistics)
    first = parse_statistics(first_half_statistics)
    if not first:
        return [e.model_dump() for e in full], first_half_statistics is None

    by_type = {e.type: e for e in first}
    out: list[dict[str, Any]] = []
    for entry in full:
        base = by_type.get(entry.type)
        home = entry.home - base.home if base else entry.home
        away = entry.away - base.away if base else entry.away
        out.append({"type": entry.type, "home": max(0, home), "away": max(0, away)})
    return out, False


class HalfSplitPersistence:
    """Idempotent first/second half captures plus the read view."""

    def __init__(self, store: MatchStateStore) -> None:
        self._store = store

    async def capture_first_half(self, match_id: str) -> CaptureResult:
        """Freeze the current cumulative statistics and first-half incidents."""
        caps = await self._store.capabilities()
        if not caps.can_capture_first_half:
            return self._result(match_id, "first", CaptureOutcome.DISABLED)
        return await self._with_retry(match_id, "first", lambda: self._try_first_half(match_id, caps))

    async def _try_first_half(self, match_id: str, caps: SchemaCapabilities) -> Optional[CaptureResult]:
        row = await self._store.load_half_split(match_id)
        if row is None:
            return self._result(match_id, "first", CaptureOutcome.NOT_FOUND)

        completeness = Completeness.from_raw(row.completeness)
        if completeness.first_half_captured:
            logger.debug("capture_first_half_skipped", match_id=match_id, reason="already_captured")
            return self._result(match_id, "first", CaptureOutcome.NOOP)

        values: dict[str, Any] = {}
        expect_null: list[str] = []
        stats = list(row.full_statistics or [])
        incidents = first_half_incidents(row.incidents)

        # An existing snapshot is never replaced.
        if caps.has("first_half_statistics") and row.first_half_statistics is None:
            values["first_half_statistics"] = stats
            expect_null.append("first_half_statistics")
        if caps.has("first_half_incidents"):
            values["first_half_incidents"] = incidents
        if caps.has("completeness"):
            marker = completeness.merged(Completeness(first_half_captured=True))
            values["completeness"] = marker.model_dump()

        if not values:
            return self._result(match_id, "first", CaptureOutcome.NOOP)
        written = await self._store.write_half_split(
            match_id, values, expect_null=expect_null, expect_unset=unset_flags(row.completeness)
        )
        if not written:
            return None

        return self._result(
            match_id,
            "first",
            CaptureOutcome.CAPTURED,
            stats_count=len(values.get("first_half_statistics", [])),
            incidents_count=len(incidents),
        )

    async def capture_second_half(self, match_id: str) -> CaptureResult:
        """Derive and store the second half; sets second-half and full-time markers."""
        caps = await self._store.capabilities()
        if not caps.can_capture_second_half:
            return self._result(match_id, "second", CaptureOutcome.DISABLED)
        return await self._with_retry(match_id, "second", lambda: self._try_second_half(match_id, caps))

    async def _try_second_half(self, match_id: str, caps: SchemaCapabilities) -> Optional[CaptureResult]:
        row = await self._store.load_half_split(match_id)
        if row is None:
            return self._result(match_id, "second", CaptureOutcome.NOT_FOUND)

        completeness = Completeness.from_raw(row.completeness)
        if completeness.full_time_captured:
            logger.debug("capture_second_half_skipped", match_id=match_id, reason="already_captured")
            return self._result(match_id, "second", CaptureOutcome.NOOP)

        stats, estimated = compute_second_half(row.full_statistics, row.first_half_statistics)
        incidents = second_half_incidents(row.incidents)

        values: dict[str, Any] = {}
        expect_null: list[str] = []
        if caps.has("second_half_statistics") and row.second_half_statistics is None:
            values["second_half_statistics"] = stats
            expect_null.append("second_half_statistics")
        if caps.has("second_half_incidents"):
            values["second_half_incidents"] = incidents
        if caps.has("completeness"):
            marker = completeness.merged(
                Completeness(
                    second_half_captured=True,
                    full_time_captured=True,
                    second_half_estimated=estimated and "second_half_statistics" in values,
                )
            )
            values["completeness"] = marker.model_dump()

        if not values:
            return self._result(match_id, "second", CaptureOutcome.NOOP)
        written = await self._store.write_half_split(
            match_id, values, expect_null=expect_null, expect_unset=unset_flags(row.completeness)
        )
        if not written:
            return None

        if estimated:
            logger.warning("second_half_estimated_from_full", match_id=match_id)
        return self._result(
            match_id,
            "second",
            CaptureOutcome.CAPTURED,
            stats_count=len(values.get("second_half_statistics", [])),
            incidents_count=len(incidents),
            estimated=estimated,
        )

    async def _with_retry(
        self,
        match_id: str,
        half: str,
        attempt_fn: Callable[[], Awaitable[Optional[CaptureResult]]],
    ) -> CaptureResult:
        for attempt in range(1, MAX_CAPTURE_ATTEMPTS + 1):
            result = await attempt_fn()
            if result is not None:
                return result
            logger.info(f"capture_{half}_half_lost_race", match_id=match_id, attempt=attempt)
        return self._result(match_id, half, CaptureOutcome.NOOP)

    async def get_half_stats(self, match_id: str) -> Optional[HalfStats]:
        row = await self._store.load_half_split(match_id)
        if row is None:
            return None
        return half_stats_view(row)

    @staticmethod
    def _result(
        match_id: str,
        half: str,
        outcome: CaptureOutcome,
        stats_count: int = 0,
        incidents_count: int = 0,
        estimated: bool = False,
    ) -> CaptureResult:
        HALF_CAPTURES.labels(half=half, outcome=outcome.value).inc()
        if outcome == CaptureOutcome.CAPTURED:
            logger.info(
                f"capture_{half}_half_saved",
                match_id=match_id,
                stats_count=stats_count,
                incidents_count=incidents_count,
                estimated=estimated,
            )
        elif outcome == CaptureOutcome.DISABLED:
            logger.info(f"capture_{half}_half_disabled", match_id=match_id, reason="schema_missing_columns")
        elif outcome == CaptureOutcome.NOT_FOUND:
            logger.warning(f"capture_{half}_half_not_found", match_id=match_id)
        return CaptureResult(
            match_id=match_id,
            outcome=outcome,
            stats_count=stats_count,
            incidents_count=incidents_count,
            estimated=estimated,
        )


def half_stats_view(row: HalfSplitRow) -> HalfStats:
    return HalfStats(
        match_id=row.match_id,
        first_half=HalfView(
            stats=row.first_half_statistics or [],
            incidents=row.first_half_incidents or [],
        ),
        second_half=HalfView(
            stats=row.second_half_statistics or [],
            incidents=row.second_half_incidents or [],
        ),
        full_time=HalfView(
            stats=row.full_statistics or [],
            incidents=row.incidents or [],
        ),
        completeness=Completeness.from_raw(row.completeness),
    )
