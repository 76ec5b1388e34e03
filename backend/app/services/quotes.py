"""Secondary quote feed: settled fund figures, holding price changes, market date."""

import logging
import math
import re
from datetime import datetime
from typing import Callable, Iterable
from zoneinfo import ZoneInfo

from app.config import MARKET_INDEX_SYMBOL, MARKET_TIMEZONE, QUOTE_BASE_URL, QUOTE_TIMEOUT
from app.models.fund import FundQuote, Holding
from app.services.errors import FeedError
from app.services.jsonp import JsonpChannel, jsonp_channel

logger = logging.getLogger(__name__)

QUOTE_REFERER = "https://gu.qq.com/"

_SIX_DIGITS = re.compile(r"^\d{6}$")
_FIVE_DIGITS = re.compile(r"^\d{5}$")


def market_prefix(code: str) -> str | None:
    """Map a security code to its exchange prefix (sh/sz/bj/hk)."""
    if _FIVE_DIGITS.match(code):
        return "hk"
    if not _SIX_DIGITS.match(code):
        return None
    if code.startswith(("6", "9")):
        return "sh"
    if code.startswith(("4", "8")):
        return "bj"
    return "sz"


def holding_symbol(code: str) -> str | None:
    """Quote symbol of a stock holding, e.g. ``s_sh600519``."""
    prefix = market_prefix(code)
    return f"s_{prefix}{code}" if prefix else None


def fund_symbol(code: str) -> str:
    """Quote symbol of a fund's own record, e.g. ``jj000001``."""
    return f"jj{code}"


def _to_percent(text: str | None) -> float | None:
    try:
        value = float(text)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


class QuoteService:
    """Reads ``~``-delimited records the quote feed assigns to ``v_<symbol>``."""

    def __init__(self, channel: JsonpChannel | None = None):
        self.channel = channel or jsonp_channel

    async def fetch_fields(
        self,
        codes: Iterable[str],
        resolver: Callable[[str], str | None] = holding_symbol,
    ) -> dict[str, list[str]]:
        """Fetch all ``codes`` in one batched request.

        Returns code -> split record. Codes the resolver cannot map, or whose
        variable the feed did not set, are simply absent. Raises
        TransportError when the feed cannot be reached.
        """
        symbol_map: dict[str, str] = {}
        for code in codes:
            symbol = resolver(code)
            if symbol:
                symbol_map[code] = symbol
        if not symbol_map:
            return {}

        url = f"{QUOTE_BASE_URL}/q={','.join(dict.fromkeys(symbol_map.values()))}"
        result = await self.channel.send(
            url, timeout=QUOTE_TIMEOUT, referer=QUOTE_REFERER, encoding="gbk"
        )

        fields: dict[str, list[str]] = {}
        for code, symbol in symbol_map.items():
            raw = result.variable(f"v_{symbol}")
            if isinstance(raw, str) and raw:
                fields[code] = raw.split("~")
        return fields

    async def fetch_fund_quote(self, fund_code: str) -> FundQuote | None:
        """Settled NAV, change and as-of date of a fund.

        Field positions of a fund record: 1 = name, 5 = settled NAV,
        7 = settled percent change, 8 = as-of date.
        Raises TransportError when the feed cannot be reached.
        """
        fields = await self.fetch_fields([fund_code], resolver=fund_symbol)
        parts = fields.get(fund_code)
        if parts is None or len(parts) <= 5:
            return None
        return FundQuote(
            name=parts[1].strip(),
            dwjz=parts[5].strip() or None,
            zzl=_to_percent(parts[7]) if len(parts) > 7 else None,
            jzrq=parts[8][:10] if len(parts) > 8 else "",
        )

    async def enrich_holdings(self, holdings: list[Holding]) -> list[Holding]:
        """Attach live percent changes (record field 5) to stock holdings.

        Never raises: any feed failure leaves every ``change`` as None.
        """
        needed = [h.code for h in holdings if holding_symbol(h.code)]
        if not needed:
            return holdings
        try:
            fields = await self.fetch_fields(needed)
        except FeedError as e:
            logger.warning(f"Holding quotes unavailable: {e}")
            return holdings

        enriched = []
        for h in holdings:
            parts = fields.get(h.code)
            change = _to_percent(parts[5]) if parts and len(parts) > 5 else None
            enriched.append(h.model_copy(update={"change": change}))
        return enriched

    async def get_market_date(self) -> str | None:
        """Latest trading date of the Shanghai composite, as ``YYYYMMDD``."""
        fields = await self.fetch_fields(
            [MARKET_INDEX_SYMBOL], resolver=lambda symbol: symbol
        )
        parts = fields.get(MARKET_INDEX_SYMBOL)
        if not parts or len(parts) <= 30:
            return None
        return parts[30][:8]

    async def is_market_trading_today(self) -> bool:
        """Return True if the A-share market has traded today.

        On weekends and public holidays the index record still carries the
        last trading day's date, which will not match today.
        """
        now = datetime.now(ZoneInfo(MARKET_TIMEZONE))
        if now.weekday() >= 5:
            return False
        try:
            market_date = await self.get_market_date()
        except FeedError as e:
            logger.warning(f"Market date probe failed: {e}")
            return True  # If check fails, assume market is open
        if market_date is None:
            return True
        return market_date == now.strftime("%Y%m%d")


# Global instance
quote_service = QuoteService()
