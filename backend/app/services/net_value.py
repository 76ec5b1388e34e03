"""Historical settled NAV lookups."""

import logging
import re
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from app.config import ARCHIVES_BASE_URL, BACKTRACK_MAX_DAYS, MARKET_TIMEZONE, NET_VALUE_TIMEOUT
from app.models.fund import NetValuePoint
from app.services.errors import FeedError
from app.services.jsonp import JsonpChannel, jsonp_channel

logger = logging.getLogger(__name__)

NO_DATA_MARKER = "暂无数据"

_TD = re.compile(r"<td[^>]*>(.*?)</td>", re.S)
_TAG = re.compile(r"<[^>]+>")


def market_today() -> date:
    """Today's date on the trading calendar."""
    return datetime.now(ZoneInfo(MARKET_TIMEZONE)).date()


def parse_net_value(content: str, date_str: str) -> float | None:
    """Read the unit NAV of ``date_str`` from an lsjz HTML fragment."""
    if not content or NO_DATA_MARKER in content:
        return None
    for row in content.split("<tr>"):
        if f"<td>{date_str}</td>" not in row:
            continue
        cells = _TD.findall(row)
        if len(cells) >= 2:
            try:
                return float(_TAG.sub("", cells[1]).strip())
            except ValueError:
                return None
    return None


class NetValueService:
    def __init__(self, channel: JsonpChannel | None = None):
        self.channel = channel or jsonp_channel

    async def fetch_net_value(self, fund_code: str, date_str: str) -> float | None:
        """Settled NAV published for exactly ``date_str``, if any."""
        url = (
            f"{ARCHIVES_BASE_URL}/F10DataApi.aspx?type=lsjz&code={fund_code}"
            f"&page=1&per=1&sdate={date_str}&edate={date_str}"
        )
        try:
            result = await self.channel.send(url, timeout=NET_VALUE_TIMEOUT)
        except FeedError as e:
            logger.warning(f"NAV lookup failed for {fund_code} on {date_str}: {e}")
            return None
        apidata = result.variable("apidata")
        if not isinstance(apidata, dict):
            return None
        return parse_net_value(str(apidata.get("content") or ""), date_str)

    async def find_settled_net_value(
        self,
        fund_code: str,
        start: date | str,
        today: date | None = None,
        max_days: int = BACKTRACK_MAX_DAYS,
    ) -> NetValuePoint | None:
        """Walk forward from ``start`` to the first date with a settled NAV.

        Probes at most ``max_days`` dates, one request each, and never a date
        after ``today`` (market calendar).
        """
        if isinstance(start, str):
            start = date.fromisoformat(start)
        today = today or market_today()

        current = start
        for _ in range(max_days):
            if current > today:
                break
            date_str = current.isoformat()
            value = await self.fetch_net_value(fund_code, date_str)
            if value is not None:
                return NetValuePoint(date=date_str, value=value)
            current += timedelta(days=1)
        return None


# Global instance
net_value_service = NetValueService()
