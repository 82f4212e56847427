"""
Match minute calculation.
Pure functions only: the same inputs always give the same minute, which is what
lets the minute worker write conditionally and converge under duplicate ticks.
"""
from __future__ import annotations

from typing import Optional, Union

from shared.models.enums import MatchPhase

FIRST_HALF_CAP = 45
HALF_TIME_MINUTE = 45
SECOND_HALF_FLOOR = 46
SECOND_HALF_BASE = 45
OVERTIME_BASE = 90

# 45 minutes of play plus a 15 minute interval.
ESTIMATED_SECOND_HALF_OFFSET_S = 45 * 60 + 15 * 60

PhaseLike = Union[MatchPhase, str, None]


def elapsed_minute(start_ts: int, now_ts: int) -> int:
    """1-based minute of a running clock started at start_ts."""
    return (now_ts - start_ts) // 60 + 1


def estimate_second_half_start(
    first_half_start: Optional[int],
    second_half_start: Optional[int],
) -> Optional[int]:
    """
    Second-half kickoff to count from.

    The recorded kickoff wins; without it the kickoff is estimated from the
    first-half kickoff. Returns None when neither is known.
    """
    if second_half_start is not None:
        return second_half_start
    if first_half_start is not None:
        return first_half_start + ESTIMATED_SECOND_HALF_OFFSET_S
    return None


def resolve_first_half_start(
    first_half_start: Optional[int],
    live_kickoff: Optional[int] = None,
    scheduled: Optional[int] = None,
) -> Optional[int]:
    """First known of: recorded first-half kickoff, feed live kickoff, scheduled kickoff."""
    for ts in (first_half_start, live_kickoff, scheduled):
        if ts is not None and ts > 0:
            return ts
    return None


def calculate(
    phase: PhaseLike,
    first_half_start: Optional[int],
    second_half_start: Optional[int],
    overtime_start: Optional[int],
    previous_minute: Optional[int],
    now: int,
) -> Optional[int]:
    """
    Compute the display minute for a match.

    Returns None when the minute cannot be derived (phase not started, unknown
    phase, or a required kickoff timestamp is missing). Callers must treat None
    as "keep what is stored", never as "clear".
    """
    p = MatchPhase.parse(phase)
    if p is None:
        return None

    if p == MatchPhase.FIRST_HALF:
        if first_half_start is None:
            return None
        return min(elapsed_minute(first_half_start, now), FIRST_HALF_CAP)

    if p == MatchPhase.HALF_TIME:
        return HALF_TIME_MINUTE

    if p == MatchPhase.SECOND_HALF:
        start = estimate_second_half_start(first_half_start, second_half_start)
        if start is None:
            return None
        return max(SECOND_HALF_BASE + elapsed_minute(start, now), SECOND_HALF_FLOOR)

    if p == MatchPhase.OVERTIME:
        if overtime_start is None:
            return None
        return OVERTIME_BASE + elapsed_minute(overtime_start, now)

    if p in (MatchPhase.PENALTIES, MatchPhase.ENDED, MatchPhase.DELAYED, MatchPhase.INTERRUPTED):
        return previous_minute

    return None
