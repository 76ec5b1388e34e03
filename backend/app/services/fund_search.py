"""Fund search-as-you-type over the suggest feed."""

import logging
from typing import Any
from urllib.parse import quote

from app.config import SEARCH_TIMEOUT, SEARCH_URL
from app.services.errors import FeedError
from app.services.jsonp import JsonpChannel, jsonp_channel, timestamp_ms

logger = logging.getLogger(__name__)

FUND_CATEGORY = 700
FUND_CATEGORY_DESC = "基金"


def is_fund_entry(entry: dict[str, Any]) -> bool:
    category = entry.get("CATEGORY")
    return (
        category == FUND_CATEGORY
        or category == str(FUND_CATEGORY)
        or entry.get("CATEGORYDESC") == FUND_CATEGORY_DESC
    )


class FundSearchService:
    def __init__(self, channel: JsonpChannel | None = None):
        self.channel = channel or jsonp_channel

    async def query(self, key: str, timeout: float = SEARCH_TIMEOUT) -> list[dict[str, Any]]:
        """Raw ``Datas`` entries for ``key``, unfiltered.

        Raises TransportError when the feed cannot be reached.
        """
        callback = self.channel.allocate_callback("SuggestData")
        url = (
            f"{SEARCH_URL}?m=1&key={quote(key, safe='')}"
            f"&callback={callback}&_={timestamp_ms()}"
        )
        result = await self.channel.send(url, timeout=timeout, callback=callback)
        data = result.payload
        if not isinstance(data, dict):
            return []
        datas = data.get("Datas") or []
        return [d for d in datas if isinstance(d, dict)]

    async def search_funds(self, text: str) -> list[dict[str, Any]]:
        """Search by name or code, keeping only fund entries."""
        if not text or not text.strip():
            return []
        try:
            entries = await self.query(text)
        except FeedError as e:
            logger.error(f"Fund search failed for {text!r}: {e}")
            return []
        return [d for d in entries if is_fund_entry(d)]

    async def lookup_fund_name(self, fund_code: str) -> str:
        """Best-effort display name of an exact code match, "" when unknown."""
        try:
            entries = await self.query(fund_code)
        except FeedError as e:
            logger.warning(f"Name lookup failed for {fund_code}: {e}")
            return ""
        for entry in entries:
            if entry.get("CODE") == fund_code:
                return str(entry.get("NAME") or entry.get("SHORTNAME") or "")
        return ""


# Global instance
fund_search_service = FundSearchService()
