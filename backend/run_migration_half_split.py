#!/usr/bin/env python3
"""
Add the reconciler-owned columns to match_live_state.
No psql required. From repo root: python3 backend/run_migration_half_split.py
Requires LS_DATABASE_URL (or DATABASE_URL) in the environment. Postgres only;
until this runs, half-split captures are disabled and logged as such.
"""
import asyncio
import os
import sys

_backend_dir = os.path.dirname(os.path.abspath(__file__))
if _backend_dir not in sys.path:
    sys.path.insert(0, _backend_dir)
os.chdir(_backend_dir)

from sqlalchemy import text

from shared.config import get_settings
from shared.utils.database import DatabaseManager

COLUMNS = (
    ("minute", "INTEGER"),
    ("last_minute_update_ts", "BIGINT"),
    ("minute_source", "VARCHAR(20)"),
    ("first_half_statistics", "JSONB"),
    ("second_half_statistics", "JSONB"),
    ("first_half_incidents", "JSONB"),
    ("second_half_incidents", "JSONB"),
    ("completeness", "JSONB"),
)


async def main() -> None:
    settings = get_settings()
    if not settings.is_postgres:
        print("LS_DATABASE_URL must point at Postgres.")
        sys.exit(1)
    db = DatabaseManager(settings)
    await db.connect()
    try:
        async with db.write_session() as session:
            for name, sql_type in COLUMNS:
                await session.execute(
                    text(f"ALTER TABLE match_live_state ADD COLUMN IF NOT EXISTS {name} {sql_type}")
                )
            await session.execute(text(
                "CREATE INDEX IF NOT EXISTS ix_match_live_state_phase_scheduled "
                "ON match_live_state(phase, scheduled_ts)"
            ))
        print("Half-split migration applied: match_live_state columns ready.")
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        await db.disconnect()


if __name__ == "__main__":
    asyncio.run(main())
