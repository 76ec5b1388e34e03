"""Callback-style (JSONP) feed transport.

The upstream feeds answer with executable script instead of data: either a call
to an agreed callback, e.g. ``jsonpgz({...});``, or plain variable assignments
such as ``v_jj000001="1~...";`` and ``var apidata={ content:"<table>..." };``.

The channel fetches such a script and evaluates it into a request-scoped
ScriptScope of its own. Each outstanding send is registered under a unique
correlation id together with the callback it expects, so overlapping requests
never observe each other's callbacks or variables.
"""

import asyncio
import itertools
import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.config import USER_AGENT
from app.services.errors import FeedTimeoutError, ParseError, TransportError

logger = logging.getLogger(__name__)

_IDENT = r"[A-Za-z_$][\w$]*"
_CALL_RE = re.compile(rf"^\s*({_IDENT})\s*\((.*)\)\s*;?\s*$", re.S)
_ASSIGN_RE = re.compile(rf"(?:^|[;\r\n])\s*(?:var\s+)?({_IDENT})\s*=\s*")
_FIELD_RE = re.compile(
    r"""(\w+)\s*:\s*("(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*'|-?\d+(?:\.\d+)?)""",
    re.S,
)
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


def timestamp_ms() -> int:
    """Cache-busting timestamp the feeds expect in ``rt``/``_`` parameters."""
    return int(time.time() * 1000)


@dataclass
class ScriptScope:
    """Callbacks invoked and variables assigned by one evaluated script."""

    calls: list[tuple[str, Any]] = field(default_factory=list)
    variables: dict[str, Any] = field(default_factory=dict)


@dataclass
class JsonpResult:
    scope: ScriptScope
    payload: Any = None
    fired: bool = False
    timed_out: bool = False

    def variable(self, name: str, default: Any = None) -> Any:
        return self.scope.variables.get(name, default)


def _scan_string(text: str, start: int) -> int:
    """Return the index just past the string literal opening at ``start``."""
    quote = text[start]
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        i += 1
    raise ParseError(f"Unterminated string literal at offset {start}")


def _scan_object(text: str, start: int) -> int:
    """Return the index just past the balanced ``{...}`` opening at ``start``."""
    depth = 0
    i = start
    while i < len(text):
        ch = text[i]
        if ch in "\"'":
            i = _scan_string(text, i)
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    raise ParseError(f"Unterminated object literal at offset {start}")


def decode_js_string(literal: str) -> str:
    """Decode a quoted JavaScript string literal, quotes included."""
    quote, raw = literal[0], literal[1:-1]
    if quote == "'":
        raw = re.sub(r'(?<!\\)"', r'\\"', raw.replace("\\'", "'"))
    try:
        return json.loads(f'"{raw}"', strict=False)
    except json.JSONDecodeError:
        return raw.replace("\\/", "/").replace('\\"', '"')


def _parse_object_literal(body: str) -> dict[str, Any]:
    """Pick the string and number fields out of a loose JS object literal."""
    fields: dict[str, Any] = {}
    for m in _FIELD_RE.finditer(body):
        key, value = m.group(1), m.group(2)
        if value[0] in "\"'":
            fields[key] = decode_js_string(value)
        elif "." in value:
            fields[key] = float(value)
        else:
            fields[key] = int(value)
    return fields


def evaluate_script(text: str) -> ScriptScope:
    """Evaluate a feed script into the callbacks and variables it produces.

    Only the two shapes the feeds use are understood: a single callback
    invocation with a JSON argument, or a sequence of assignments whose values
    are string, number or flat object literals.
    """
    scope = ScriptScope()
    if not text or not text.strip():
        return scope

    call = _CALL_RE.match(text)
    if call and call.group(1) != "var":
        arg = call.group(2).strip()
        if not arg:
            scope.calls.append((call.group(1), None))
            return scope
        try:
            scope.calls.append((call.group(1), json.loads(arg)))
        except json.JSONDecodeError as e:
            raise ParseError(f"Callback {call.group(1)} argument is not JSON: {e}") from e
        return scope

    pos = 0
    while True:
        m = _ASSIGN_RE.search(text, pos)
        if m is None:
            break
        name, start = m.group(1), m.end()
        if start >= len(text):
            break
        head = text[start]
        if head in "\"'":
            end = _scan_string(text, start)
            scope.variables[name] = decode_js_string(text[start:end])
        elif head == "{":
            end = _scan_object(text, start)
            scope.variables[name] = _parse_object_literal(text[start + 1 : end - 1])
        else:
            num = _NUMBER_RE.match(text, start)
            if num is None:
                pos = start
                continue
            end = num.end()
            scope.variables[name] = float(num.group()) if "." in num.group() else int(num.group())
        pos = end
    return scope


class JsonpChannel:
    """Loads callback-style feed scripts over one shared HTTP client."""

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client
        # outstanding request id -> callback it expects (None for variable feeds)
        self._pending: dict[str, str | None] = {}
        self._ids = itertools.count(1)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def allocate_callback(self, prefix: str) -> str:
        """Allocate a callback name no other outstanding request uses."""
        return f"{prefix}_{timestamp_ms()}_{next(self._ids)}"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": USER_AGENT}, follow_redirects=True
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _load(
        self, url: str, referer: str | None, encoding: str | None
    ) -> ScriptScope:
        headers = {"User-Agent": USER_AGENT}
        if referer:
            headers["Referer"] = referer
        try:
            resp = await self._get_client().get(url, headers=headers)
        except httpx.TimeoutException as e:
            raise FeedTimeoutError(f"{url}: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"{url}: {e}") from e
        if resp.status_code >= 400:
            raise TransportError(f"{url}: HTTP {resp.status_code}")
        if encoding:
            resp.encoding = encoding
        return evaluate_script(resp.text)

    def _dispatch(self, request_id: str, scope: ScriptScope) -> tuple[bool, Any]:
        """Find the invocation of the callback registered for ``request_id``."""
        callback = self._pending.get(request_id)
        for name, payload in scope.calls:
            if callback is not None and name == callback:
                return True, payload
        return False, None

    async def send(
        self,
        url: str,
        *,
        timeout: float,
        callback: str | None = None,
        referer: str | None = None,
        encoding: str | None = None,
    ) -> JsonpResult:
        """Load ``url`` and resolve with whatever the script produced.

        With ``callback`` set, the result carries the payload the script passed
        to that callback (``fired`` tells whether it was invoked at all).
        Without it, callers read variables from the result's scope.

        Never raises on a missed deadline: the result is flagged ``timed_out``
        instead. Raises TransportError when the script cannot be loaded and
        ParseError when the script itself is malformed.
        """
        request_id = f"req_{next(self._ids)}"
        self._pending[request_id] = callback
        try:
            try:
                scope = await asyncio.wait_for(self._load(url, referer, encoding), timeout)
            except (asyncio.TimeoutError, FeedTimeoutError):
                logger.warning(f"Feed did not answer within {timeout}s: {url}")
                return JsonpResult(scope=ScriptScope(), timed_out=True)

            if callback is not None:
                fired, payload = self._dispatch(request_id, scope)
                if fired:
                    return JsonpResult(scope=scope, payload=payload, fired=True)
                logger.warning(f"Callback {callback} was not invoked by {url}")
            return JsonpResult(scope=scope)
        finally:
            self._pending.pop(request_id, None)


# Global instance
jsonp_channel = JsonpChannel()
