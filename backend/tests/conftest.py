"""Canned responses for the callback-style feeds."""

import json
from typing import Any, Callable

import httpx
import pytest_asyncio

from app.services.jsonp import JsonpChannel


class FakeFeeds:
    """Routes feed requests to canned scripts and records every requested URL."""

    def __init__(self):
        self.routes: list[tuple[str, Any, int, Exception | None, str]] = []
        self.quote_records: dict[str, list[str]] = {}
        self.requests: list[str] = []
        self.channel = JsonpChannel(
            httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        )

    def add(
        self,
        fragment: str,
        body: str | Callable[[httpx.Request], str] = "",
        status: int = 200,
        error: Exception | None = None,
        encoding: str = "utf-8",
    ) -> None:
        self.routes.append((fragment, body, status, error, encoding))

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        for fragment, body, status, error, encoding in self.routes:
            if fragment in url:
                if error is not None:
                    raise error
                text = body(request) if callable(body) else body
                return httpx.Response(
                    status,
                    content=text.encode(encoding),
                    headers={"Content-Type": f"application/javascript; charset={encoding}"},
                )
        return httpx.Response(404, text="")

    def requested(self, fragment: str) -> list[str]:
        return [u for u in self.requests if fragment in u]

    # Feed-shaped helpers

    def estimate(self, code: str, payload: dict | None) -> None:
        self.add(f"/js/{code}.js", f"jsonpgz({json.dumps(payload, ensure_ascii=False)});")

    def quote(self, symbol: str, fields: list[str]) -> None:
        if not self.quote_records:
            self.add("qt.gtimg.cn/q=", self._quote_body, encoding="gbk")
        self.quote_records[symbol] = fields

    def fund_quote(self, code: str, name: str, dwjz: str, zzl: str, jzrq: str) -> None:
        """A ``jj<code>`` record: 1 = name, 5 = NAV, 7 = change, 8 = date."""
        self.quote(f"jj{code}", ["1", name, code, "", "", dwjz, "", zzl, jzrq, "CNY"])

    def stock_quote(self, symbol: str, name: str, change: str) -> None:
        """An ``s_<prefix><code>`` record: 5 = percent change."""
        code = symbol[4:]
        self.quote(symbol, ["1", name, code, "100.00", "1.20", change, "12345", "67890", "", "5000.0"])

    def _quote_body(self, request: httpx.Request) -> str:
        symbols = request.url.path.split("q=", 1)[1].split(",")
        lines = []
        for symbol in symbols:
            if symbol in self.quote_records:
                lines.append(f'v_{symbol}="{"~".join(self.quote_records[symbol])}";')
            else:
                lines.append('v_pv_none_match="1";')
        return "\n".join(lines)

    def holdings(self, code: str, html: str) -> None:
        self.add(f"type=jjcc&code={code}", _apidata(html))

    def net_value(self, code: str, date_str: str, html: str) -> None:
        self.add(f"code={code}&page=1&per=1&sdate={date_str}", _apidata(html))

    def search(self, datas: list[dict]) -> None:
        def respond(request: httpx.Request) -> str:
            callback = request.url.params["callback"]
            payload = {"ErrCode": 0, "ErrMsg": None, "Datas": datas}
            return f"{callback}({json.dumps(payload, ensure_ascii=False)})"

        self.add("FundSearchAPI.ashx", respond)


def _apidata(html: str) -> str:
    content = json.dumps(html, ensure_ascii=False)
    return f"var apidata={{ content:{content},arryear:[2024,2023],curyear:2024}};"


@pytest_asyncio.fixture
async def feeds():
    fake = FakeFeeds()
    yield fake
    await fake.channel.aclose()
