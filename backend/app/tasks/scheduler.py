"""Background scheduler keeping the watchlist snapshots fresh."""

import logging
from datetime import datetime
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.triggers.cron import CronTrigger

from app.config import (
    LUNCH_BREAK_END,
    LUNCH_BREAK_START,
    MARKET_TIMEZONE,
    REFRESH_INTERVAL,
    TRADING_END,
    TRADING_START,
    WATCHLIST_CODES,
)
from app.services.cache import snapshot_cache
from app.services.fund_data import fund_data_service

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler(timezone=MARKET_TIMEZONE)


def is_trading_hours(now: datetime | None = None) -> bool:
    """Check if ``now`` is within A-share trading hours (market timezone)."""
    now = now or datetime.now(ZoneInfo(MARKET_TIMEZONE))
    # Skip weekends
    if now.weekday() >= 5:
        return False
    current_time = now.strftime("%H:%M")
    return (TRADING_START <= current_time <= LUNCH_BREAK_START) or (
        LUNCH_BREAK_END <= current_time <= TRADING_END
    )


async def refresh_snapshots(fund_codes: list[str]) -> int:
    """Fetch ``fund_codes`` and cache every snapshot obtained.

    Failed codes keep whatever snapshot the cache already holds.
    """
    if not fund_codes:
        return 0
    result = await fund_data_service.fetch_many(fund_codes)
    for snapshot in result.snapshots:
        snapshot_cache.set(snapshot)
    if result.failures:
        failed = ", ".join(f.code for f in result.failures)
        logger.warning(f"Refresh kept previous snapshots for: {failed}")
    return len(result.snapshots)


async def refresh_watchlist():
    """Refresh the watchlist; outside trading sessions only fill cache gaps."""
    codes = list(WATCHLIST_CODES)
    if not codes:
        return

    try:
        if not is_trading_hours() or not await fund_data_service.quotes.is_market_trading_today():
            codes = snapshot_cache.missing(codes)
        updated = await refresh_snapshots(codes)
        if updated:
            logger.info(f"Refreshed {updated}/{len(codes)} watchlist snapshots")
    except Exception as e:
        logger.error(f"Failed to refresh watchlist: {e}")


async def refresh_settled_values():
    """After the evening NAV release, refetch everything on the watchlist."""
    try:
        updated = await refresh_snapshots(list(WATCHLIST_CODES))
        logger.info(f"Refreshed settled values for {updated}/{len(WATCHLIST_CODES)} funds")
    except Exception as e:
        logger.error(f"Failed to refresh settled values: {e}")


def start_scheduler():
    """Start the background scheduler."""
    scheduler.add_job(
        refresh_watchlist,
        trigger=IntervalTrigger(seconds=REFRESH_INTERVAL),
        id="refresh_watchlist",
        replace_existing=True,
    )
    scheduler.add_job(
        refresh_settled_values,
        trigger=CronTrigger(hour=21, minute=30, day_of_week="mon-fri", timezone=MARKET_TIMEZONE),
        id="refresh_settled_values",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Scheduler started, refreshing {len(WATCHLIST_CODES)} funds every {REFRESH_INTERVAL}s")


def stop_scheduler():
    """Stop the background scheduler."""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler stopped")
