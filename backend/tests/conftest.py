"""Shared fixtures: a file-backed sqlite database with the match_live_state table."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable

import pytest
import pytest_asyncio

_backend = Path(__file__).resolve().parent.parent
if str(_backend) not in sys.path:
    sys.path.insert(0, str(_backend))

from shared.config import Settings
from shared.models.orm import Base, MatchLiveStateORM
from shared.utils.database import DatabaseManager

from reconciler.config import ReconcilerSettings
from reconciler.store import MatchStateStore


@pytest.fixture
def reconciler_settings() -> ReconcilerSettings:
    return ReconcilerSettings(
        minute_interval_s=30.0,
        minute_batch_size=100,
        push_recency_window_s=5,
        validator_batch_size=50,
        validator_lookback_s=24 * 3600,
    )


@pytest_asyncio.fixture
async def db(tmp_path: Path) -> AsyncIterator[DatabaseManager]:
    settings = Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'live_state.db'}")
    manager = DatabaseManager(settings)
    await manager.connect()
    async with manager.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield manager
    await manager.disconnect()


@pytest_asyncio.fixture
async def store(db: DatabaseManager) -> MatchStateStore:
    return MatchStateStore(db)


@pytest.fixture
def insert_match(db: DatabaseManager) -> Callable[..., Awaitable[None]]:
    async def _insert(**fields: Any) -> None:
        async with db.write_session() as session:
            session.add(MatchLiveStateORM(**fields))

    return _insert


@pytest.fixture
def load_match(db: DatabaseManager) -> Callable[[str], Awaitable[MatchLiveStateORM]]:
    async def _load(match_id: str) -> MatchLiveStateORM:
        async with db.read_session() as session:
            row = await session.get(MatchLiveStateORM, match_id)
            assert row is not None
            return row

    return _load
