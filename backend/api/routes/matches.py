"""
Match routes: half-split statistics for one match.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from shared.models.domain import HalfStats
from shared.utils.logging import get_logger

from api.dependencies import get_half_split
from reconciler.half_split import HalfSplitPersistence

logger = get_logger(__name__)

router = APIRouter(prefix="/v1/matches", tags=["matches"])


@router.get("/{match_id}/half-stats", response_model=HalfStats)
async def get_half_stats(
    match_id: str,
    half_split: HalfSplitPersistence = Depends(get_half_split),
) -> HalfStats:
    """First-half, second-half and full-time statistics with completeness markers."""
    stats = await half_split.get_half_stats(match_id)
    if stats is None:
        raise HTTPException(status_code=404, detail="Match not found")
    return stats
