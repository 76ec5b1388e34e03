"""Top holdings scraped from the fund archives feed."""

import logging
import re
from html import unescape

from app.config import ARCHIVES_BASE_URL, HOLDINGS_TIMEOUT, MAX_HOLDINGS
from app.models.fund import Holding
from app.services.errors import FeedError
from app.services.jsonp import JsonpChannel, jsonp_channel, timestamp_ms

logger = logging.getLogger(__name__)

_THEAD_ROW = re.compile(r"<thead[\s\S]*?<tr[\s\S]*?</tr>[\s\S]*?</thead>", re.I)
_TH = re.compile(r"<th(?:\s[^>]*)?>([\s\S]*?)</th>", re.I)
_TBODY = re.compile(r"<tbody[\s\S]*?</tbody>", re.I)
_TR = re.compile(r"<tr[\s\S]*?</tr>", re.I)
_TD = re.compile(r"<td(?:\s[^>]*)?>([\s\S]*?)</td>", re.I)
_TAG = re.compile(r"<[^>]*>")

_CODE_IN_CELL = re.compile(r"(\d{6})")
_CODE_CELL = re.compile(r"^\d{6}$")
_PERCENT_IN_CELL = re.compile(r"([\d.]+)\s*%")
_PERCENT_CELL = re.compile(r"\d+(?:\.\d+)?\s*%")

CODE_LABELS = ("股票代码", "证券代码")
NAME_LABELS = ("股票名称", "证券名称")
WEIGHT_LABELS = ("占净值比例", "占比")


def _cell_text(cell: str) -> str:
    return unescape(_TAG.sub("", cell)).strip()


def _detect_columns(html: str) -> tuple[int, int, int]:
    """Locate code/name/weight columns from the table header, -1 when absent."""
    header = _THEAD_ROW.search(html)
    labels = [_cell_text(th) for th in _TH.findall(header.group(0))] if header else []
    idx_code = idx_name = idx_weight = -1
    for i, label in enumerate(labels):
        t = re.sub(r"\s+", "", label)
        if idx_code < 0 and any(k in t for k in CODE_LABELS):
            idx_code = i
        if idx_name < 0 and any(k in t for k in NAME_LABELS):
            idx_name = i
        if idx_weight < 0 and any(k in t for k in WEIGHT_LABELS):
            idx_weight = i
    return idx_code, idx_name, idx_weight


def _format_weight(text: str) -> str:
    m = _PERCENT_IN_CELL.search(text)
    return f"{m.group(1)}%" if m else text


def _parse_row(cells: list[str], idx_code: int, idx_name: int, idx_weight: int) -> Holding:
    code = name = weight = ""

    if 0 <= idx_code < len(cells) and cells[idx_code]:
        m = _CODE_IN_CELL.search(cells[idx_code])
        code = m.group(1) if m else cells[idx_code]
    else:
        code = next((c for c in cells if _CODE_CELL.match(c)), "")

    if 0 <= idx_name < len(cells) and cells[idx_name]:
        name = cells[idx_name]
    elif code:
        name = next((c for c in cells if c and c != code and not c.endswith("%")), "")

    if 0 <= idx_weight < len(cells) and cells[idx_weight]:
        weight = _format_weight(cells[idx_weight])
    else:
        cell = next((c for c in cells if _PERCENT_CELL.search(c)), None)
        weight = _format_weight(cell) if cell is not None else ""

    return Holding(code=code, name=name, weight=weight)


def parse_holdings_table(html: str, limit: int = MAX_HOLDINGS) -> list[Holding]:
    """Parse the holdings table of an archives HTML fragment.

    Columns come from header labels when the table has a recognisable
    ``<thead>``; otherwise each row is read by content: a 6-digit cell is the
    code, a percent cell the weight, and the first other cell the name.
    Rows without any usable field are dropped. Never raises.
    """
    if not html:
        return []
    idx_code, idx_name, idx_weight = _detect_columns(html)

    body = _TBODY.search(html)
    rows = _TR.findall(body.group(0) if body else html)

    holdings: list[Holding] = []
    for row in rows:
        cells = [_cell_text(td) for td in _TD.findall(row)]
        if not cells:
            continue
        holding = _parse_row(cells, idx_code, idx_name, idx_weight)
        if holding.code or holding.name or holding.weight:
            holdings.append(holding)
    return holdings[:limit]


class HoldingsService:
    def __init__(self, channel: JsonpChannel | None = None):
        self.channel = channel or jsonp_channel

    async def fetch_holdings(self, fund_code: str) -> list[Holding]:
        """Fetch the latest disclosed top holdings. Degrades to []."""
        url = (
            f"{ARCHIVES_BASE_URL}/FundArchivesDatas.aspx"
            f"?type=jjcc&code={fund_code}&topline={MAX_HOLDINGS}&year=&month="
            f"&_={timestamp_ms()}"
        )
        try:
            result = await self.channel.send(url, timeout=HOLDINGS_TIMEOUT)
        except FeedError as e:
            logger.warning(f"Holdings unavailable for {fund_code}: {e}")
            return []

        apidata = result.variable("apidata")
        if not isinstance(apidata, dict):
            return []
        return parse_holdings_table(str(apidata.get("content") or ""))


# Global instance
holdings_service = HoldingsService()
