"""JSON-RPC 2.0 `tools/call` client for remote tool servers."""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

import httpx

from ..observability.logging_utils import elapsed_ms, log_event, log_warning, summarize_text
from ..schemas.models import FailureKind, ToolCallResult


DEFAULT_TOOL_TIMEOUT = 30.0
_DATA_PREFIX = "data: "


@dataclass(frozen=True)
class Decoded:
    payload: Any


@dataclass(frozen=True)
class DecodeFailed:
    reason: str
    kind: FailureKind = FailureKind.MALFORMED


DecodeOutcome = Union[Decoded, DecodeFailed]


def build_tool_request(tool_name: str, args: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "tools/call",
        "params": {"name": tool_name, "arguments": dict(args)},
    }


def build_tool_headers(extra_headers: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    headers = {
        "Content-Type": "application/json",
        "Accept": "application/json, text/event-stream",
    }
    if extra_headers:
        headers.update({str(k): str(v) for k, v in extra_headers.items()})
    return headers


def _first_content_text(message: object) -> Optional[str]:
    if not isinstance(message, dict):
        return None
    result = message.get("result")
    if not isinstance(result, dict):
        return None
    content = result.get("content")
    if not isinstance(content, list) or not content:
        return None
    first = content[0]
    if not isinstance(first, dict):
        return None
    text = first.get("text")
    return text if isinstance(text, str) and text else None


def _decode_event_stream(body: str) -> Optional[DecodeOutcome]:
    line = next(
        (item for item in body.splitlines() if item.startswith(_DATA_PREFIX)), None
    )
    if line is None:
        return None
    try:
        message = json.loads(line[len(_DATA_PREFIX) :])
    except json.JSONDecodeError:
        return DecodeFailed("event-stream data line is not JSON")
    text = _first_content_text(message)
    if text is None:
        # Framed but empty; whole-body JSON is tried next.
        return None
    try:
        return Decoded(json.loads(text))
    except json.JSONDecodeError:
        return Decoded(text)


def _decode_plain_json(body: str) -> DecodeOutcome:
    try:
        message = json.loads(body)
    except json.JSONDecodeError:
        return DecodeFailed("no data in response")
    if not isinstance(message, dict):
        return DecodeFailed("no data in response")
    if message.get("result"):
        return Decoded(message["result"])
    error = message.get("error")
    if error:
        detail = error.get("message") if isinstance(error, dict) else str(error)
        return DecodeFailed(detail or "tool server error", kind=FailureKind.UPSTREAM)
    return DecodeFailed("no data in response")


def decode_tool_response(body: str) -> DecodeOutcome:
    """
    Decode a tool-server response body.

    The `data: <json>` event-stream framing is tried first; the embedded
    `result.content[0].text` is returned parsed when it is JSON and verbatim
    otherwise. Without a usable framed line the whole body is parsed as JSON.
    """
    if not body:
        return DecodeFailed("empty response body")
    framed = _decode_event_stream(body)
    if isinstance(framed, Decoded):
        return framed
    plain = _decode_plain_json(body)
    if isinstance(plain, Decoded) or framed is None:
        return plain
    return framed


def is_error_or_no_data(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, Mapping):
        if value.get("error"):
            return True
        if value.get("success") is False:
            return True
    return False


class ToolInvoker:
    def __init__(
        self,
        *,
        default_timeout: float = DEFAULT_TOOL_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._default_timeout = default_timeout
        self._transport = transport

    async def call_tool(
        self,
        endpoint: str,
        tool_name: str,
        args: Mapping[str, Any],
        extra_headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> ToolCallResult:
        if not endpoint:
            return ToolCallResult.failed(
                FailureKind.CONFIGURATION_GAP, "no endpoint configured"
            )
        timeout = self._default_timeout if timeout is None else timeout
        url = f"{endpoint.rstrip('/')}/mcp"
        started = time.perf_counter()
        try:
            body = await asyncio.wait_for(
                self._post(url, tool_name, args, extra_headers, timeout),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            log_warning(
                "tool_call_timeout",
                tool=tool_name,
                endpoint=endpoint,
                timeout_s=timeout,
            )
            return ToolCallResult.failed(FailureKind.TIMEOUT, "request timed out")
        except Exception as exc:
            log_warning("tool_call_failed", tool=tool_name, endpoint=endpoint, error=str(exc))
            return ToolCallResult.failed(FailureKind.TRANSPORT, str(exc) or type(exc).__name__)

        outcome = decode_tool_response(body)
        if isinstance(outcome, DecodeFailed):
            log_warning(
                "tool_call_undecodable",
                tool=tool_name,
                kind=outcome.kind.value,
                reason=outcome.reason,
                body=summarize_text(body, 200),
            )
            return ToolCallResult.failed(outcome.kind, outcome.reason)
        log_event("tool_call_ok", tool=tool_name, elapsed_ms=elapsed_ms(started))
        return ToolCallResult.ok(outcome.payload)

    async def _post(
        self,
        url: str,
        tool_name: str,
        args: Mapping[str, Any],
        extra_headers: Optional[Mapping[str, str]],
        timeout: float,
    ) -> str:
        async with httpx.AsyncClient(
            timeout=timeout, trust_env=False, transport=self._transport
        ) as client:
            response = await client.post(
                url,
                json=build_tool_request(tool_name, args),
                headers=build_tool_headers(extra_headers),
            )
            return response.text
