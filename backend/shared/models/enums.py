"""Domain enumerations for the Live State platform."""
from __future__ import annotations

from enum import Enum
from typing import Optional


class MatchPhase(str, Enum):
    NOT_STARTED = "not_started"
    FIRST_HALF = "first_half"
    HALF_TIME = "half_time"
    SECOND_HALF = "second_half"
    OVERTIME = "overtime"
    PENALTIES = "penalties"
    ENDED = "ended"
    DELAYED = "delayed"
    INTERRUPTED = "interrupted"

    @classmethod
    def parse(cls, value: object) -> Optional["MatchPhase"]:
        """Lenient lookup; unknown or empty values map to None."""
        if isinstance(value, MatchPhase):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return None

    @property
    def is_running(self) -> bool:
        """Clock advances from a phase-start timestamp."""
        return self in (MatchPhase.FIRST_HALF, MatchPhase.SECOND_HALF, MatchPhase.OVERTIME)


# Phases the minute worker visits each tick.
MINUTE_ACTIVE_PHASES: tuple[MatchPhase, ...] = (
    MatchPhase.FIRST_HALF,
    MatchPhase.HALF_TIME,
    MatchPhase.SECOND_HALF,
    MatchPhase.OVERTIME,
    MatchPhase.PENALTIES,
)


class MinuteSource(str, Enum):
    COMPUTED = "computed"


class CaptureOutcome(str, Enum):
    CAPTURED = "captured"
    NOOP = "noop"
    DISABLED = "disabled"
    NOT_FOUND = "not_found"
