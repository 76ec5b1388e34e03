"""Watchlist snapshot routes."""

from fastapi import APIRouter

from app.api.schemas import WatchlistResponse
from app.config import WATCHLIST_CODES
from app.services.cache import snapshot_cache

router = APIRouter(prefix="/api", tags=["watchlist"])


@router.get("/watchlist", response_model=WatchlistResponse)
async def get_watchlist():
    """Latest cached snapshots of the configured watchlist."""
    codes = list(WATCHLIST_CODES)
    return WatchlistResponse(
        codes=codes,
        snapshots=[s.model_dump(by_alias=True) for s in snapshot_cache.snapshots(codes)],
        missing=snapshot_cache.missing(codes),
    )
