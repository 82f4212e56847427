"""
Storage access for the reconciliation engine.

Every UPDATE issued here is built from an explicit set of owned columns, so
the minute worker and the half-split writer can run against the same row
without overwriting each other's fields. Neither writer touches updated_at.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import false, func, inspect, or_, select, update

from shared.models.domain import HalfSplitRow, MinuteCandidate
from shared.models.enums import MatchPhase, MinuteSource
from shared.models.orm import MatchLiveStateORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

logger = get_logger(__name__)

T = MatchLiveStateORM

# ── Field ownership ─────────────────────────────────────────────────────
MINUTE_WORKER_FIELDS: frozenset[str] = frozenset({
    "minute",
    "last_minute_update_ts",
    "minute_source",
})
HALF_SPLIT_FIELDS: frozenset[str] = frozenset({
    "first_half_statistics",
    "second_half_statistics",
    "first_half_incidents",
    "second_half_incidents",
    "completeness",
})

# Derived-data columns added by later migrations; may be absent.
OPTIONAL_HALF_SPLIT_COLUMNS: tuple[str, ...] = (
    "first_half_statistics",
    "second_half_statistics",
    "first_half_incidents",
    "second_half_incidents",
    "completeness",
)

_MINUTE_CANDIDATE_COLUMNS = (
    T.match_id,
    T.phase,
    T.scheduled_ts,
    T.first_half_start_ts,
    T.second_half_start_ts,
    T.overtime_start_ts,
    T.live_kickoff_ts,
    T.provider_update_ts,
    T.last_event_ts,
    T.minute,
)


class FieldOwnershipError(ValueError):
    """An update tried to write a column its actor does not own."""


def owned_values(owner: frozenset[str], values: dict[str, Any]) -> dict[str, Any]:
    """Return values unchanged if every key is owned, else raise."""
    foreign = set(values) - owner
    if foreign:
        raise FieldOwnershipError(f"columns not owned by writer: {sorted(foreign)}")
    return values


def _flag_unset(key: str) -> Any:
    """completeness[key] is false, absent or the marker is NULL."""
    return func.coalesce(T.completeness[key].as_boolean(), false()) == false()


@dataclass(frozen=True)
class SchemaCapabilities:
    """Which optional derived-data columns exist in the live schema."""
    columns: frozenset[str]

    def has(self, column: str) -> bool:
        return column in self.columns

    @property
    def can_capture_first_half(self) -> bool:
        return any(self.has(c) for c in ("first_half_statistics", "first_half_incidents", "completeness"))

    @property
    def can_capture_second_half(self) -> bool:
        return any(self.has(c) for c in ("second_half_statistics", "second_half_incidents", "completeness"))

    @property
    def can_validate(self) -> bool:
        return self.has("completeness")


class MatchStateStore:
    """Reads and conditional writes against match_live_state."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db
        self._capabilities: Optional[SchemaCapabilities] = None
        self._capabilities_lock = asyncio.Lock()

    # ── Schema capabilities ─────────────────────────────────────────────

    async def capabilities(self) -> SchemaCapabilities:
        """Detect optional columns once; later calls reuse the result."""
        if self._capabilities is not None:
            return self._capabilities
        async with self._capabilities_lock:
            if self._capabilities is None:
                table = T.__tablename__

                def _column_names(sync_conn: Any) -> set[str]:
                    return {col["name"] for col in inspect(sync_conn).get_columns(table)}

                async with self._db.engine.connect() as conn:
                    present = await conn.run_sync(_column_names)
                caps = SchemaCapabilities(
                    columns=frozenset(c for c in OPTIONAL_HALF_SPLIT_COLUMNS if c in present)
                )
                missing = sorted(set(OPTIONAL_HALF_SPLIT_COLUMNS) - caps.columns)
                if missing:
                    logger.warning("schema_capabilities_degraded", missing_columns=missing)
                else:
                    logger.info("schema_capabilities_checked", columns=sorted(caps.columns))
                self._capabilities = caps
        return self._capabilities

    # ── Minute worker ───────────────────────────────────────────────────

    async def fetch_minute_candidates(
        self,
        phases: Sequence[MatchPhase],
        limit: int,
    ) -> list[MinuteCandidate]:
        """Matches in the given phases, most recently scheduled first."""
        stmt = (
            select(*_MINUTE_CANDIDATE_COLUMNS)
            .where(T.phase.in_([p.value for p in phases]))
            .order_by(T.scheduled_ts.desc().nulls_last(), T.match_id.asc())
            .limit(limit)
        )
        async with self._db.read_session() as session:
            result = await session.execute(stmt)
            return [MinuteCandidate.model_validate(dict(row._mapping)) for row in result.all()]

    async def compare_and_set_minute(
        self,
        match_id: str,
        expected: Optional[int],
        new_minute: int,
        now_ts: int,
        source: MinuteSource = MinuteSource.COMPUTED,
    ) -> bool:
        """
        Write the minute only if the stored value still equals expected.

        Returns True when exactly one row changed. A False result means another
        writer got there first (or the row is gone); the caller re-reads next tick.
        """
        guard = T.minute.is_(None) if expected is None else T.minute == expected
        values = owned_values(MINUTE_WORKER_FIELDS, {
            "minute": new_minute,
            "last_minute_update_ts": now_ts,
            "minute_source": source.value,
        })
        stmt = (
            update(T)
            .where(T.match_id == match_id, guard)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._db.write_session() as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    # ── Half split ──────────────────────────────────────────────────────

    async def load_half_split(self, match_id: str) -> Optional[HalfSplitRow]:
        """Statistics, incidents and completeness for one match (only columns that exist)."""
        caps = await self.capabilities()
        columns = [T.match_id, T.phase, T.full_statistics, T.incidents]
        columns += [getattr(T, name) for name in OPTIONAL_HALF_SPLIT_COLUMNS if caps.has(name)]
        async with self._db.read_session() as session:
            result = await session.execute(select(*columns).where(T.match_id == match_id))
            row = result.first()
        if row is None:
            return None
        return HalfSplitRow.model_validate(dict(row._mapping))

    async def write_half_split(
        self,
        match_id: str,
        values: dict[str, Any],
        expect_null: Iterable[str] = (),
        expect_unset: Iterable[str] = (),
    ) -> bool:
        """
        Write half-split columns in one statement.

        Columns in expect_null must still be NULL for the write to apply; this
        keeps a captured snapshot immutable when two captures race. Completeness
        keys in expect_unset must still be false or absent, so a marker merged
        from an earlier read never drops a flag set in the meantime.
        """
        caps = await self.capabilities()
        owned_values(HALF_SPLIT_FIELDS, values)
        writable = {k: v for k, v in values.items() if caps.has(k)}
        if not writable:
            return False
        conditions = [T.match_id == match_id]
        conditions += [getattr(T, name).is_(None) for name in expect_null if name in writable]
        if "completeness" in writable:
            conditions += [_flag_unset(key) for key in expect_unset]
        stmt = (
            update(T)
            .where(*conditions)
            .values(**writable)
            .execution_options(synchronize_session=False)
        )
        async with self._db.write_session() as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    # ── Validator ───────────────────────────────────────────────────────

    async def fetch_incomplete_ended(self, scheduled_since_ts: int, limit: int) -> list[HalfSplitRow]:
        """Ended matches in the lookback window whose completeness has not converged."""
        caps = await self.capabilities()
        if not caps.can_validate:
            return []

        stmt = (
            select(T.match_id, T.phase, T.completeness)
            .where(
                T.phase == MatchPhase.ENDED.value,
                T.scheduled_ts >= scheduled_since_ts,
                or_(
                    T.completeness.is_(None),
                    _flag_unset("first_half_captured"),
                    _flag_unset("full_time_captured"),
                ),
            )
            .order_by(T.scheduled_ts.desc(), T.match_id.asc())
            .limit(limit)
        )
        async with self._db.read_session() as session:
            result = await session.execute(stmt)
            return [HalfSplitRow.model_validate(dict(row._mapping)) for row in result.all()]
