"""
Pydantic v2 domain models shared across Live State services.
These are the wire and internal representations, not ORM models.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.models.enums import CaptureOutcome, MatchPhase

StatValue = Union[int, float]

# Incidents at or before this minute belong to the first half.
HALF_BOUNDARY_MINUTE = 45


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# ── Statistics ──────────────────────────────────────────────────────────
class StatEntry(DomainModel):
    """One cumulative statistic for both sides, e.g. corners 9-4."""
    model_config = ConfigDict(extra="ignore")

    type: Union[int, str]
    home: StatValue = 0
    away: StatValue = 0

    @field_validator("home", "away", mode="before")
    @classmethod
    def _none_is_zero(cls, v: Any) -> Any:
        return 0 if v is None else v


def parse_statistics(raw: Any) -> list[StatEntry]:
    """Parse a stored statistics collection; malformed entries are dropped."""
    if not isinstance(raw, list):
        return []
    entries: list[StatEntry] = []
    for item in raw:
        if not isinstance(item, dict) or item.get("type") is None:
            continue
        try:
            entries.append(StatEntry.model_validate(item))
        except ValueError:
            continue
    return entries


# ── Incidents ───────────────────────────────────────────────────────────
def incident_minute(incident: Any) -> int:
    """Occurrence minute of a raw incident; feeds use either `time` or `minute`."""
    if not isinstance(incident, dict):
        return 0
    value = incident.get("time") or incident.get("minute") or 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def first_half_incidents(incidents: Any) -> list[dict[str, Any]]:
    if not isinstance(incidents, list):
        return []
    return [i for i in incidents if isinstance(i, dict) and incident_minute(i) <= HALF_BOUNDARY_MINUTE]


def second_half_incidents(incidents: Any) -> list[dict[str, Any]]:
    if not isinstance(incidents, list):
        return []
    return [i for i in incidents if isinstance(i, dict) and incident_minute(i) > HALF_BOUNDARY_MINUTE]


# ── Completeness ────────────────────────────────────────────────────────
class Completeness(DomainModel):
    """Monotonic capture markers; a flag once set is never cleared."""
    first_half_captured: bool = False
    second_half_captured: bool = False
    full_time_captured: bool = False
    # Second half fell back to full-match values (no first-half snapshot).
    second_half_estimated: bool = False

    @classmethod
    def from_raw(cls, raw: Any) -> "Completeness":
        if not isinstance(raw, dict):
            return cls()
        return cls(
            first_half_captured=bool(raw.get("first_half_captured", raw.get("first_half", False))),
            second_half_captured=bool(raw.get("second_half_captured", raw.get("second_half", False))),
            full_time_captured=bool(raw.get("full_time_captured", raw.get("full_time", False))),
            second_half_estimated=bool(raw.get("second_half_estimated", False)),
        )

    def merged(self, other: "Completeness") -> "Completeness":
        """Union of two marker sets."""
        return Completeness(
            first_half_captured=self.first_half_captured or other.first_half_captured,
            second_half_captured=self.second_half_captured or other.second_half_captured,
            full_time_captured=self.full_time_captured or other.full_time_captured,
            second_half_estimated=self.second_half_estimated or other.second_half_estimated,
        )


# ── Minute worker inputs / outputs ──────────────────────────────────────
class MinuteCandidate(DomainModel):
    """Row projection the minute worker needs for one match."""
    match_id: str
    phase: str
    scheduled_ts: Optional[int] = None
    first_half_start_ts: Optional[int] = None
    second_half_start_ts: Optional[int] = None
    overtime_start_ts: Optional[int] = None
    live_kickoff_ts: Optional[int] = None
    provider_update_ts: Optional[int] = None
    last_event_ts: Optional[int] = None
    minute: Optional[int] = None

    @property
    def last_push_ts(self) -> Optional[int]:
        """
        Most recent push-side freshness timestamp.

        The later of provider_update_ts and last_event_ts. The upstream feed
        preferred provider_update_ts whenever it was set; taking the later one
        only makes the recent-push skip fire more often, which is harmless.
        """
        stamps = [ts for ts in (self.provider_update_ts, self.last_event_ts) if ts]
        return max(stamps) if stamps else None


class MinuteChange(DomainModel):
    """Notification emitted after a successful minute write."""
    match_id: str
    minute: int
    phase: MatchPhase
    previous_minute: Optional[int] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ── Half split ──────────────────────────────────────────────────────────
class HalfSplitRow(DomainModel):
    """Statistics/incident/completeness projection of a match row."""
    match_id: str
    phase: Optional[str] = None
    full_statistics: Optional[list[Any]] = None
    first_half_statistics: Optional[list[Any]] = None
    second_half_statistics: Optional[list[Any]] = None
    incidents: Optional[list[Any]] = None
    first_half_incidents: Optional[list[Any]] = None
    second_half_incidents: Optional[list[Any]] = None
    completeness: Optional[dict[str, Any]] = None


class CaptureResult(DomainModel):
    match_id: str
    outcome: CaptureOutcome
    stats_count: int = 0
    incidents_count: int = 0
    estimated: bool = False

    @property
    def noop(self) -> bool:
        return self.outcome == CaptureOutcome.NOOP

    @property
    def captured(self) -> bool:
        return self.outcome == CaptureOutcome.CAPTURED


class HalfView(DomainModel):
    stats: list[Any] = Field(default_factory=list)
    incidents: list[Any] = Field(default_factory=list)


class HalfStats(DomainModel):
    """Three statistic views plus completeness, for presentation layers."""
    match_id: str
    first_half: HalfView
    second_half: HalfView
    full_time: HalfView
    completeness: Completeness
