"""Fund snapshot pipeline.

For one fund code:
    1. live estimate (fundgz); when it fails, fall back to search name +
       settled quote and flag the snapshot ``noValuation``;
    2. settled quote and top holdings (+ their live price changes) fetched
       concurrently;
    3. settled figures reconciled by as-of date.

Batches run code after code; a failed code never stops the rest.
"""

import asyncio
import logging
from typing import Iterable

from app.config import MAX_HOLDINGS, SEARCH_TIMEOUT
from app.models.fund import (
    BatchResult,
    FetchFailure,
    FundQuote,
    FundSnapshot,
    Holding,
    SettledFigures,
)
from app.services.errors import DataUnavailableError, FeedError
from app.services.estimate import EstimateService
from app.services.fund_search import FundSearchService
from app.services.holdings import HoldingsService
from app.services.jsonp import JsonpChannel, jsonp_channel
from app.services.net_value import NetValueService
from app.services.quotes import QuoteService

logger = logging.getLogger(__name__)


def unknown_fund_name(fund_code: str) -> str:
    return f"未知基金({fund_code})"


def reconcile(primary: SettledFigures, secondary: SettledFigures | None) -> SettledFigures:
    """Prefer the most recently settled figures.

    The secondary figures win when they carry an as-of date that is not older
    than the primary's (ISO dates compare correctly as strings).
    """
    if secondary is not None and secondary.jzrq:
        if not primary.jzrq or secondary.jzrq >= primary.jzrq:
            return secondary
    return primary


class FundDataService:
    """Builds FundSnapshots out of the estimate, quote and archives feeds."""

    def __init__(self, channel: JsonpChannel | None = None):
        self.channel = channel or jsonp_channel
        self.estimates = EstimateService(self.channel)
        self.quotes = QuoteService(self.channel)
        self.holdings = HoldingsService(self.channel)
        self.search = FundSearchService(self.channel)
        self.net_values = NetValueService(self.channel)

    async def _fetch_settled_quote(self, fund_code: str) -> FundQuote | None:
        try:
            return await self.quotes.fetch_fund_quote(fund_code)
        except FeedError as e:
            logger.warning(f"Settled quote unavailable for {fund_code}: {e}")
            return None

    async def _fetch_enriched_holdings(self, fund_code: str) -> list[Holding]:
        holdings = await self.holdings.fetch_holdings(fund_code)
        return await self.quotes.enrich_holdings(holdings[:MAX_HOLDINGS])

    async def fetch_fund(self, fund_code: str) -> FundSnapshot:
        """Fetch one fund. Raises DataUnavailableError when nothing is usable."""
        estimate = await self.estimates.fetch_estimate(fund_code)
        if estimate is None:
            return await self.fetch_fallback(fund_code)

        quote, holdings = await asyncio.gather(
            self._fetch_settled_quote(fund_code),
            self._fetch_enriched_holdings(fund_code),
        )
        secondary = (
            SettledFigures(dwjz=quote.dwjz, jzrq=quote.jzrq, zzl=quote.zzl)
            if quote is not None
            else None
        )
        settled = reconcile(SettledFigures(dwjz=estimate.dwjz, jzrq=estimate.jzrq), secondary)

        return FundSnapshot(
            code=fund_code,
            name=estimate.name,
            dwjz=settled.dwjz,
            gsz=estimate.gsz,
            gztime=estimate.gztime,
            jzrq=settled.jzrq,
            gszzl=estimate.gszzl,
            zzl=settled.zzl,
            no_valuation=False,
            holdings=holdings,
        )

    async def fetch_fallback(self, fund_code: str) -> FundSnapshot:
        """Degraded snapshot from settled data only, flagged ``noValuation``."""
        try:
            name = await asyncio.wait_for(
                self.search.lookup_fund_name(fund_code), SEARCH_TIMEOUT
            )
        except asyncio.TimeoutError:
            logger.warning(f"Name lookup for {fund_code} timed out, continuing without it")
            name = ""

        try:
            quote = await self.quotes.fetch_fund_quote(fund_code)
        except FeedError as e:
            raise DataUnavailableError(fund_code, f"settled quote feed failed: {e}") from e
        if quote is None or not quote.dwjz:
            raise DataUnavailableError(fund_code, "no settled net value available")

        return FundSnapshot(
            code=fund_code,
            name=name or quote.name or unknown_fund_name(fund_code),
            dwjz=quote.dwjz,
            jzrq=quote.jzrq or None,
            zzl=quote.zzl,
            no_valuation=True,
        )

    async def fetch_many(self, fund_codes: Iterable[str]) -> BatchResult:
        """Fetch each distinct code in turn, collecting snapshots and failures."""
        result = BatchResult()
        for code in dict.fromkeys(fund_codes):
            try:
                result.snapshots.append(await self.fetch_fund(code))
            except DataUnavailableError as e:
                logger.error(f"Failed to fetch fund {code}: {e.reason}")
                result.failures.append(FetchFailure(code=code, reason=e.reason))
        return result


# Global instance
fund_data_service = FundDataService()
