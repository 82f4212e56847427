"""
SQLAlchemy 2.0 ORM models for Live State.
Only the columns the reconciliation engine reads or writes are mapped; the
rows themselves are created and owned by the upstream sync pipeline.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, BigInteger, DateTime, Index, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on Postgres, plain JSON elsewhere (sqlite in tests).
JSONType = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")


class Base(DeclarativeBase):
    pass


class MatchLiveStateORM(Base):
    __tablename__ = "match_live_state"
    __table_args__ = (
        Index("ix_match_live_state_phase_scheduled", "phase", "scheduled_ts"),
    )

    match_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    phase: Mapped[str] = mapped_column(String(20), nullable=False, default="not_started")
    scheduled_ts: Mapped[Optional[int]] = mapped_column(BigInteger)

    # Phase-start timestamps, written by the sync pipeline.
    first_half_start_ts: Mapped[Optional[int]] = mapped_column(BigInteger)
    second_half_start_ts: Mapped[Optional[int]] = mapped_column(BigInteger)
    overtime_start_ts: Mapped[Optional[int]] = mapped_column(BigInteger)
    live_kickoff_ts: Mapped[Optional[int]] = mapped_column(BigInteger)

    # Push freshness, written by the live-push ingester.
    provider_update_ts: Mapped[Optional[int]] = mapped_column(BigInteger)
    last_event_ts: Mapped[Optional[int]] = mapped_column(BigInteger)

    # Minute worker columns.
    minute: Mapped[Optional[int]] = mapped_column(Integer)
    last_minute_update_ts: Mapped[Optional[int]] = mapped_column(BigInteger)
    minute_source: Mapped[Optional[str]] = mapped_column(String(20))

    # Half-split columns.
    full_statistics: Mapped[Optional[list[Any]]] = mapped_column(JSONType)
    first_half_statistics: Mapped[Optional[list[Any]]] = mapped_column(JSONType)
    second_half_statistics: Mapped[Optional[list[Any]]] = mapped_column(JSONType)
    incidents: Mapped[Optional[list[Any]]] = mapped_column(JSONType)
    first_half_incidents: Mapped[Optional[list[Any]]] = mapped_column(JSONType)
    second_half_incidents: Mapped[Optional[list[Any]]] = mapped_column(JSONType)
    completeness: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType)

    # Input to staleness detectors outside this engine; never written here.
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
