"""Tests for the callback-style feed channel."""

import asyncio

import httpx
import pytest

from app.services.errors import ParseError, TransportError
from app.services.jsonp import JsonpChannel, decode_js_string, evaluate_script


class TestEvaluateScript:
    def test_callback_invocation(self):
        scope = evaluate_script('jsonpgz({"fundcode":"000001","gszzl":"1.23"});')
        assert scope.calls == [("jsonpgz", {"fundcode": "000001", "gszzl": "1.23"})]
        assert scope.variables == {}

    def test_empty_callback_invocation(self):
        scope = evaluate_script("jsonpgz();")
        assert scope.calls == [("jsonpgz", None)]

    def test_callback_with_invalid_json(self):
        with pytest.raises(ParseError):
            evaluate_script("jsonpgz({fundcode: 000001});")

    def test_string_assignments(self):
        text = 'v_s_sh600519="1~贵州茅台~600519~1800.00~2.00~1.12";\nv_pv_none_match="1";'
        scope = evaluate_script(text)
        assert scope.variables["v_s_sh600519"].split("~")[1] == "贵州茅台"
        assert scope.variables["v_pv_none_match"] == "1"

    def test_object_literal_assignment(self):
        text = (
            "var apidata={ content:\"<table class='w782'><tr><td>1</td></tr></table>\","
            "arryear:[2024,2023],curyear:2024};"
        )
        scope = evaluate_script(text)
        apidata = scope.variables["apidata"]
        assert apidata["content"] == "<table class='w782'><tr><td>1</td></tr></table>"
        assert apidata["curyear"] == 2024

    def test_escaped_quotes_and_slashes(self):
        assert decode_js_string(r'"<a href=\"x\">y<\/a>"') == '<a href="x">y</a>'
        assert decode_js_string(r"'it\'s'") == "it's"

    def test_blank_script(self):
        scope = evaluate_script("   ")
        assert scope.calls == [] and scope.variables == {}


def _channel(handler) -> JsonpChannel:
    return JsonpChannel(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestJsonpChannel:
    @pytest.mark.asyncio
    async def test_callback_payload_resolves_send(self):
        channel = _channel(lambda req: httpx.Response(200, text='cb_1({"a": 1})'))
        result = await channel.send("https://feed.test/x.js", timeout=1, callback="cb_1")
        assert result.fired is True
        assert result.payload == {"a": 1}
        assert channel.pending_count == 0
        await channel.aclose()

    @pytest.mark.asyncio
    async def test_other_callback_names_are_ignored(self):
        channel = _channel(lambda req: httpx.Response(200, text='someone_else({"a": 1})'))
        result = await channel.send("https://feed.test/x.js", timeout=1, callback="mine")
        assert result.fired is False
        assert result.payload is None
        await channel.aclose()

    @pytest.mark.asyncio
    async def test_variable_feed_without_callback(self):
        channel = _channel(lambda req: httpx.Response(200, text='v_jj000001="1~x";'))
        result = await channel.send("https://feed.test/q=jj000001", timeout=1)
        assert result.variable("v_jj000001") == "1~x"
        assert result.variable("v_missing") is None
        await channel.aclose()

    @pytest.mark.asyncio
    async def test_deadline_resolves_instead_of_raising(self):
        async def slow(request):
            await asyncio.sleep(1)
            return httpx.Response(200, text='cb({"a": 1})')

        channel = _channel(slow)
        result = await channel.send("https://feed.test/slow.js", timeout=0.05, callback="cb")
        assert result.timed_out is True
        assert result.payload is None
        assert channel.pending_count == 0
        await channel.aclose()

    @pytest.mark.asyncio
    async def test_client_timeout_is_reported_as_timed_out(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        channel = _channel(handler)
        result = await channel.send("https://feed.test/x.js", timeout=1, callback="cb")
        assert result.timed_out is True
        await channel.aclose()

    @pytest.mark.asyncio
    async def test_connection_error_raises_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        channel = _channel(handler)
        with pytest.raises(TransportError):
            await channel.send("https://feed.test/x.js", timeout=1)
        assert channel.pending_count == 0
        await channel.aclose()

    @pytest.mark.asyncio
    async def test_http_error_status_raises_transport_error(self):
        channel = _channel(lambda req: httpx.Response(502, text="bad gateway"))
        with pytest.raises(TransportError):
            await channel.send("https://feed.test/x.js", timeout=1)
        await channel.aclose()

    @pytest.mark.asyncio
    async def test_overlapping_sends_keep_their_own_payloads(self):
        async def handler(request):
            code = request.url.path.split("/")[-1].removesuffix(".js")
            await asyncio.sleep(0.05 if code == "000001" else 0)
            return httpx.Response(200, text=f'jsonpgz({{"fundcode": "{code}"}});')

        channel = _channel(handler)
        first, second = await asyncio.gather(
            channel.send("https://feed.test/js/000001.js", timeout=1, callback="jsonpgz"),
            channel.send("https://feed.test/js/110022.js", timeout=1, callback="jsonpgz"),
        )
        assert first.payload["fundcode"] == "000001"
        assert second.payload["fundcode"] == "110022"
        assert channel.pending_count == 0
        await channel.aclose()

    @pytest.mark.asyncio
    async def test_requests_stay_registered_only_while_in_flight(self):
        release = asyncio.Event()

        async def handler(request):
            await release.wait()
            return httpx.Response(200, text='cb({"a": 1})')

        channel = _channel(handler)
        task = asyncio.create_task(channel.send("https://feed.test/x.js", timeout=1, callback="cb"))
        await asyncio.sleep(0.01)
        assert channel.pending_count == 1
        release.set()
        result = await task
        assert result.payload == {"a": 1}
        assert channel.pending_count == 0
        await channel.aclose()

    def test_allocated_callbacks_are_unique(self):
        channel = JsonpChannel()
        names = {channel.allocate_callback("SuggestData") for _ in range(100)}
        assert len(names) == 100
        assert all(n.startswith("SuggestData_") for n in names)
