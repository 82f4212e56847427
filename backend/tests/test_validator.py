"""
Completeness validator tests.

Run: pytest backend/tests/test_validator.py -v
"""
from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from shared.models.domain import CaptureResult, HalfSplitRow
from shared.models.enums import CaptureOutcome
from reconciler.config import ReconcilerSettings
from reconciler.half_split import HalfSplitPersistence
from reconciler.store import MatchStateStore
from reconciler.validator import CompletenessValidator

NOW = 1_700_000_000


@pytest.mark.asyncio
async def test_one_pass_converges_an_unmarked_match(
    store: MatchStateStore, reconciler_settings: ReconcilerSettings, insert_match: Any, load_match: Any
) -> None:
    await insert_match(
        match_id="m1",
        phase="ended",
        scheduled_ts=NOW - 7200,
        minute=93,
        full_statistics=[{"type": 2, "home": 9, "away": 4}],
        incidents=[{"type": 1, "time": 20}, {"type": 1, "time": 70}],
    )
    validator = CompletenessValidator(store, HalfSplitPersistence(store), reconciler_settings, clock=lambda: NOW)

    summary = await validator.tick()
    assert (summary.scanned, summary.repaired, summary.failed) == (1, 1, 0)

    row = await load_match("m1")
    assert row.first_half_statistics is not None
    assert row.second_half_statistics is not None
    assert row.completeness["first_half_captured"] is True
    assert row.completeness["second_half_captured"] is True
    assert row.completeness["full_time_captured"] is True
    assert row.minute == 93

    # Converged rows drop out of the candidate set.
    follow_up = await validator.tick()
    assert follow_up.scanned == 0


@pytest.mark.asyncio
async def test_only_missing_half_is_repaired(
    store: MatchStateStore, reconciler_settings: ReconcilerSettings, insert_match: Any, load_match: Any
) -> None:
    await insert_match(
        match_id="m1",
        phase="ended",
        scheduled_ts=NOW - 600,
        full_statistics=[{"type": 2, "home": 9, "away": 4}],
        first_half_statistics=[{"type": 2, "home": 5, "away": 2}],
        completeness={"first_half_captured": True},
    )
    validator = CompletenessValidator(store, HalfSplitPersistence(store), reconciler_settings, clock=lambda: NOW)
    summary = await validator.tick()
    assert summary.repaired == 1

    row = await load_match("m1")
    assert row.first_half_statistics == [{"type": 2, "home": 5, "away": 2}]
    assert row.second_half_statistics == [{"type": 2, "home": 4, "away": 2}]


@pytest.mark.asyncio
async def test_lookback_window_excludes_old_matches(
    store: MatchStateStore, reconciler_settings: ReconcilerSettings, insert_match: Any
) -> None:
    await insert_match(match_id="old", phase="ended", scheduled_ts=NOW - 2 * 24 * 3600)
    validator = CompletenessValidator(store, HalfSplitPersistence(store), reconciler_settings, clock=lambda: NOW)
    assert (await validator.tick()).scanned == 0


def _captured(match_id: str) -> CaptureResult:
    return CaptureResult(match_id=match_id, outcome=CaptureOutcome.CAPTURED)


@pytest.mark.asyncio
async def test_failing_match_does_not_abort_batch(reconciler_settings: ReconcilerSettings) -> None:
    store = MagicMock()
    store.fetch_incomplete_ended = AsyncMock(
        return_value=[HalfSplitRow(match_id="bad"), HalfSplitRow(match_id="good")]
    )
    half_split = MagicMock()
    half_split.capture_first_half = AsyncMock(side_effect=[RuntimeError("statement timeout"), _captured("good")])
    half_split.capture_second_half = AsyncMock(return_value=_captured("good"))

    validator = CompletenessValidator(store, half_split, reconciler_settings, clock=lambda: NOW)
    summary = await validator.tick()
    assert (summary.scanned, summary.repaired, summary.failed) == (2, 1, 1)
    store.fetch_incomplete_ended.assert_awaited_once_with(NOW - 24 * 3600, 50)


@pytest.mark.asyncio
async def test_selection_failure_ends_tick(reconciler_settings: ReconcilerSettings) -> None:
    store = MagicMock()
    store.fetch_incomplete_ended = AsyncMock(side_effect=OSError("connection reset"))
    validator = CompletenessValidator(store, MagicMock(), reconciler_settings, clock=lambda: NOW)
    summary = await validator.tick()
    assert summary.selection_failed is True
    assert summary.scanned == 0
