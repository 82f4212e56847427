"""
Storage tests against sqlite: compare-and-set, field ownership, schema
capability detection and the validator's selection query.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from shared.models.enums import MINUTE_ACTIVE_PHASES
from shared.utils.database import DatabaseManager
from reconciler.store import (
    HALF_SPLIT_FIELDS,
    MINUTE_WORKER_FIELDS,
    FieldOwnershipError,
    MatchStateStore,
    owned_values,
)

NOW = 1_700_000_000


def test_ownership_sets_are_disjoint() -> None:
    assert MINUTE_WORKER_FIELDS.isdisjoint(HALF_SPLIT_FIELDS)
    assert "updated_at" not in MINUTE_WORKER_FIELDS | HALF_SPLIT_FIELDS


def test_owned_values_rejects_foreign_columns() -> None:
    with pytest.raises(FieldOwnershipError):
        owned_values(MINUTE_WORKER_FIELDS, {"minute": 3, "completeness": {}})
    assert owned_values(HALF_SPLIT_FIELDS, {"completeness": {}}) == {"completeness": {}}


@pytest.mark.asyncio
async def test_write_half_split_refuses_minute_column(store: MatchStateStore, insert_match: Any) -> None:
    await insert_match(match_id="m1", phase="half_time", minute=45)
    with pytest.raises(FieldOwnershipError):
        await store.write_half_split("m1", {"minute": 46})


@pytest.mark.asyncio
async def test_compare_and_set_null_safe(store: MatchStateStore, insert_match: Any, load_match: Any) -> None:
    await insert_match(match_id="m1", phase="first_half")
    assert await store.compare_and_set_minute("m1", None, 3, NOW) is True
    # Stored value is now 3; a writer still expecting NULL loses.
    assert await store.compare_and_set_minute("m1", None, 4, NOW) is False
    assert await store.compare_and_set_minute("m1", 3, 4, NOW + 60) is True
    row = await load_match("m1")
    assert row.minute == 4
    assert row.last_minute_update_ts == NOW + 60


@pytest.mark.asyncio
async def test_compare_and_set_leaves_updated_at(store: MatchStateStore, insert_match: Any, load_match: Any) -> None:
    stamp = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    await insert_match(match_id="m1", phase="first_half", minute=10, updated_at=stamp)
    assert await store.compare_and_set_minute("m1", 10, 11, NOW)
    row = await load_match("m1")
    assert row.updated_at.replace(tzinfo=timezone.utc) == stamp


@pytest.mark.asyncio
async def test_compare_and_set_unknown_match(store: MatchStateStore) -> None:
    assert await store.compare_and_set_minute("missing", None, 1, NOW) is False


@pytest.mark.asyncio
async def test_minute_candidates_order_and_cap(store: MatchStateStore, insert_match: Any) -> None:
    await insert_match(match_id="b", phase="first_half", scheduled_ts=NOW - 100)
    await insert_match(match_id="a", phase="second_half", scheduled_ts=NOW - 100)
    await insert_match(match_id="c", phase="penalties", scheduled_ts=NOW)
    await insert_match(match_id="d", phase="half_time", scheduled_ts=None)
    await insert_match(match_id="e", phase="not_started", scheduled_ts=NOW + 500)
    await insert_match(match_id="f", phase="delayed", scheduled_ts=NOW + 600)

    rows = await store.fetch_minute_candidates(MINUTE_ACTIVE_PHASES, limit=10)
    assert [r.match_id for r in rows] == ["c", "a", "b", "d"]

    capped = await store.fetch_minute_candidates(MINUTE_ACTIVE_PHASES, limit=2)
    assert [r.match_id for r in capped] == ["c", "a"]


@pytest.mark.asyncio
async def test_capabilities_full_schema(store: MatchStateStore) -> None:
    caps = await store.capabilities()
    assert caps.can_capture_first_half
    assert caps.can_capture_second_half
    assert caps.can_validate
    assert await store.capabilities() is caps


@pytest.mark.asyncio
async def test_capabilities_legacy_schema(tmp_path: Any) -> None:
    from shared.config import Settings

    db = DatabaseManager(Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'legacy.db'}"))
    await db.connect()
    try:
        async with db.engine.begin() as conn:
            await conn.exec_driver_sql(
                "CREATE TABLE match_live_state ("
                "match_id VARCHAR(64) PRIMARY KEY, phase VARCHAR(20), scheduled_ts BIGINT, "
                "full_statistics JSON, incidents JSON, minute INTEGER)"
            )
            await conn.exec_driver_sql(
                "INSERT INTO match_live_state (match_id, phase, scheduled_ts) VALUES ('m1', 'ended', 1)"
            )
        store = MatchStateStore(db)
        caps = await store.capabilities()
        assert not caps.can_capture_first_half
        assert not caps.can_validate
        assert await store.fetch_incomplete_ended(0, 50) == []
        row = await store.load_half_split("m1")
        assert row is not None
        assert row.completeness is None
    finally:
        await db.disconnect()


@pytest.mark.asyncio
async def test_incomplete_ended_selection(store: MatchStateStore, insert_match: Any) -> None:
    since = NOW - 24 * 3600
    await insert_match(match_id="no-marker", phase="ended", scheduled_ts=NOW - 3600)
    await insert_match(
        match_id="first-only", phase="ended", scheduled_ts=NOW - 7200,
        completeness={"first_half_captured": True, "second_half_captured": False, "full_time_captured": False},
    )
    await insert_match(
        match_id="complete", phase="ended", scheduled_ts=NOW - 1800,
        completeness={"first_half_captured": True, "second_half_captured": True, "full_time_captured": True},
    )
    await insert_match(
        match_id="full-only", phase="ended", scheduled_ts=NOW - 5400,
        completeness={"full_time_captured": True},
    )
    await insert_match(match_id="too-old", phase="ended", scheduled_ts=since - 60)
    await insert_match(match_id="still-live", phase="second_half", scheduled_ts=NOW - 3000)

    rows = await store.fetch_incomplete_ended(since, limit=50)
    assert [r.match_id for r in rows] == ["no-marker", "full-only", "first-only"]

    capped = await store.fetch_incomplete_ended(since, limit=1)
    assert [r.match_id for r in capped] == ["no-marker"]


@pytest.mark.asyncio
async def test_write_half_split_expect_null_guard(store: MatchStateStore, insert_match: Any, load_match: Any) -> None:
    await insert_match(match_id="m1", phase="half_time", first_half_statistics=[{"type": 2, "home": 1, "away": 1}])
    written = await store.write_half_split(
        "m1",
        {"first_half_statistics": [{"type": 2, "home": 9, "away": 9}]},
        expect_null=["first_half_statistics"],
    )
    assert written is False
    row = await load_match("m1")
    assert row.first_half_statistics == [{"type": 2, "home": 1, "away": 1}]


@pytest.mark.asyncio
async def test_write_half_split_expect_unset_guard(store: MatchStateStore, insert_match: Any, load_match: Any) -> None:
    await insert_match(match_id="m1", phase="ended", completeness={"first_half_captured": True})
    stale_marker = {"first_half_captured": False, "full_time_captured": True}

    written = await store.write_half_split(
        "m1", {"completeness": stale_marker}, expect_unset=["first_half_captured", "full_time_captured"]
    )
    assert written is False
    assert (await load_match("m1")).completeness == {"first_half_captured": True}

    written = await store.write_half_split(
        "m1",
        {"completeness": {"first_half_captured": True, "full_time_captured": True}},
        expect_unset=["full_time_captured"],
    )
    assert written is True
    assert (await load_match("m1")).completeness["full_time_captured"] is True
