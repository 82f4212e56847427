"""
Singletons shared by the API routes, wired once by the lifespan.
Tests override get_store / get_half_split through app.dependency_overrides.
"""
from __future__ import annotations

from typing import Optional

from shared.utils.database import DatabaseManager

from reconciler.half_split import HalfSplitPersistence
from reconciler.store import MatchStateStore

_store: Optional[MatchStateStore] = None
_half_split: Optional[HalfSplitPersistence] = None


def init_dependencies(db: DatabaseManager) -> None:
    global _store, _half_split
    _store = MatchStateStore(db)
    _half_split = HalfSplitPersistence(_store)


def get_store() -> MatchStateStore:
    if _store is None:
        raise RuntimeError("API dependencies not initialized. Call init_dependencies first.")
    return _store


def get_half_split() -> HalfSplitPersistence:
    """Reader behind GET /v1/matches/{id}/half-stats."""
    if _half_split is None:
        raise RuntimeError("API dependencies not initialized. Call init_dependencies first.")
    return _half_split
