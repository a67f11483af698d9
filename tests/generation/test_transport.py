"""Tests for TransportExecutor error typing."""
import asyncio

import httpx
import pytest

from genproxy.services.generation.errors import (
    NonStructuredResponseError,
    TransportError,
    UpstreamRejectedError,
)
from genproxy.services.generation.transport import TransportExecutor


def _executor(handler) -> TransportExecutor:
    return TransportExecutor(timeout=5.0, verify_tls=False, transport=httpx.MockTransport(handler))


def test_returns_parsed_json():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["connection"] = request.headers.get("connection")
        seen["body"] = request.content
        return httpx.Response(200, json={"ok": True})

    payload = asyncio.run(_executor(handler).send("POST", "https://up.test/x", {"X-A": "1"}, b"abc"))
    assert payload == {"ok": True}
    assert seen == {"connection": "close", "body": b"abc"}


def test_non_json_body_keeps_excerpt():
    html = "<html>" + "x" * 500

    def handler(request):
        return httpx.Response(200, text=html)

    with pytest.raises(NonStructuredResponseError) as exc_info:
        asyncio.run(_executor(handler).send("GET", "https://up.test/x"))
    assert exc_info.value.raw_excerpt == html[:200]
    assert exc_info.value.http_status == 200


def test_non_2xx_json_is_rejected_with_payload():
    def handler(request):
        return httpx.Response(400, json={"error": {"message": "bad prompt"}})

    with pytest.raises(UpstreamRejectedError) as exc_info:
        asyncio.run(_executor(handler).send("POST", "https://up.test/x"))
    err = exc_info.value
    assert not isinstance(err, NonStructuredResponseError)
    assert err.http_status == 400
    assert err.payload == {"error": {"message": "bad prompt"}}
    assert "bad prompt" in err.message


def test_non_2xx_html_is_non_structured():
    def handler(request):
        return httpx.Response(502, text="Bad Gateway")

    with pytest.raises(NonStructuredResponseError) as exc_info:
        asyncio.run(_executor(handler).send("GET", "https://up.test/x"))
    assert exc_info.value.http_status == 502


def test_network_failure_is_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection reset", request=request)

    with pytest.raises(TransportError):
        asyncio.run(_executor(handler).send("GET", "https://up.test/x"))
