"""
Phase-transition hook and minute broadcast tests.
"""
from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from shared.models.domain import CaptureResult, MinuteChange
from shared.models.enums import CaptureOutcome, MatchPhase
from reconciler.broadcaster import RedisChangeBroadcaster
from reconciler.lifecycle import LifecycleListener


@pytest.fixture
def half_split() -> MagicMock:
    hs = MagicMock()
    hs.capture_first_half = AsyncMock(return_value=CaptureResult(match_id="m1", outcome=CaptureOutcome.CAPTURED))
    hs.capture_second_half = AsyncMock(return_value=CaptureResult(match_id="m1", outcome=CaptureOutcome.CAPTURED))
    return hs


@pytest.mark.asyncio
async def test_half_time_captures_first_half(half_split: MagicMock) -> None:
    results = await LifecycleListener(half_split).on_phase_transition("m1", "half_time")
    assert len(results) == 1
    half_split.capture_first_half.assert_awaited_once_with("m1")
    half_split.capture_second_half.assert_not_awaited()


@pytest.mark.asyncio
async def test_ended_captures_both_halves_in_order(half_split: MagicMock) -> None:
    order: list[str] = []
    half_split.capture_first_half.side_effect = lambda m: order.append("first")
    half_split.capture_second_half.side_effect = lambda m: order.append("second")
    await LifecycleListener(half_split).on_phase_transition("m1", MatchPhase.ENDED)
    assert order == ["first", "second"]


@pytest.mark.asyncio
@pytest.mark.parametrize("phase", ["first_half", "second_half", "penalties", "bogus"])
async def test_other_transitions_capture_nothing(half_split: MagicMock, phase: str) -> None:
    assert await LifecycleListener(half_split).on_phase_transition("m1", phase) == []
    half_split.capture_first_half.assert_not_awaited()


@pytest.mark.asyncio
async def test_handle_message_dispatches(half_split: MagicMock) -> None:
    listener = LifecycleListener(half_split)
    await listener.handle_message(json.dumps({"match_id": "m7", "phase": "half_time"}))
    half_split.capture_first_half.assert_awaited_once_with("m7")


@pytest.mark.asyncio
async def test_handle_message_ignores_malformed_payloads(half_split: MagicMock) -> None:
    listener = LifecycleListener(half_split)
    await listener.handle_message("not json")
    await listener.handle_message(json.dumps({"phase": "half_time"}))
    half_split.capture_first_half.assert_not_awaited()


@pytest.mark.asyncio
async def test_handle_message_absorbs_capture_errors(half_split: MagicMock) -> None:
    half_split.capture_first_half.side_effect = RuntimeError("db gone")
    await LifecycleListener(half_split).handle_message(json.dumps({"match_id": "m1", "phase": "half_time"}))


# ── Broadcaster ─────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_broadcast_publishes_change_json() -> None:
    redis = MagicMock()
    redis.publish_minute = AsyncMock(return_value=2)
    change = MinuteChange(match_id="m1", minute=31, phase=MatchPhase.FIRST_HALF, previous_minute=30)

    assert await RedisChangeBroadcaster(redis).publish(change) is True
    match_id, payload = redis.publish_minute.await_args.args
    body = json.loads(payload)
    assert match_id == "m1"
    assert (body["minute"], body["phase"], body["previous_minute"]) == (31, "first_half", 30)
    assert "timestamp" in body


@pytest.mark.asyncio
async def test_broadcast_failure_is_not_raised() -> None:
    redis = MagicMock()
    redis.publish_minute = AsyncMock(side_effect=ConnectionError("redis down"))
    change = MinuteChange(match_id="m1", minute=31, phase=MatchPhase.FIRST_HALF)
    assert await RedisChangeBroadcaster(redis).publish(change) is False
