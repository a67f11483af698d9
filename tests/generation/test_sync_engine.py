"""Tests for SyncImageEngine: size mapping, URL vs inline results, blob store persistence."""
import asyncio
import base64
import json

import httpx
import pytest

from genproxy.services.collaborators.base import BlobStore
from genproxy.services.generation.base import GenerationRequest
from genproxy.services.generation.engines.sync_images import SyncImageEngine, pixel_size
from genproxy.services.generation.errors import (
    BlobStoreError,
    CollaboratorError,
    UnrecognizedResponseError,
    UpstreamRejectedError,
)
from genproxy.services.generation.transport import TransportExecutor

PATH = "/v1/images/generations"


class FakeBlobStore(BlobStore):
    def __init__(self, available=True, fail=False):
        self.available = available
        self.fail = fail
        self.uploads = []

    def is_available(self) -> bool:
        return self.available

    async def upload(self, path, content, content_type):
        self.uploads.append((path, content, content_type))
        if self.fail:
            raise CollaboratorError("Storage upload failed [400]", http_status=400)

    def public_url(self, path):
        return f"https://storage.test/public/{path}"


def _engine(response_json=None, status=200, blob_store=None, captured=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if captured is not None:
            captured.append(request)
        return httpx.Response(status, json=response_json)

    transport = TransportExecutor(transport=httpx.MockTransport(handler))
    config = {"api_key": "secret", "base_url": "https://up.test", "storage_prefix": "temp"}
    return SyncImageEngine(config, transport, blob_store=blob_store)


def _request(size="16:9"):
    return GenerationRequest(model="dall-e-3", prompt="x", size=size)


def test_pixel_size_mapping():
    assert pixel_size("16:9") == "1792x1024"
    assert pixel_size("3:4") == "1024x1792"
    assert pixel_size("1:1") == "1024x1024"
    assert pixel_size("21:9") == "1024x1024"
    assert pixel_size(None) == "1024x1024"


def test_request_payload():
    captured = []
    engine = _engine({"data": [{"url": "http://x/img.png"}]}, captured=captured)
    asyncio.run(engine.generate(_request(), PATH, "user-1"))

    request = captured[0]
    assert request.method == "POST"
    assert request.url == httpx.URL("https://up.test/v1/images/generations")
    assert request.headers["authorization"] == "Bearer secret"
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == {
        "model": "dall-e-3",
        "prompt": "x",
        "size": "1792x1024",
        "n": 1,
        "response_format": "url",
    }


def test_direct_url_skips_blob_store():
    store = FakeBlobStore()
    engine = _engine({"data": [{"url": "http://x/img.png"}]}, blob_store=store)
    assert asyncio.run(engine.generate(_request(), PATH, "user-1")) == "http://x/img.png"
    assert store.uploads == []


def test_inline_image_is_persisted_once():
    raw = b"\x89PNG\r\n\x1a\nimage-bytes"
    store = FakeBlobStore()
    engine = _engine({"data": [{"b64_json": base64.b64encode(raw).decode()}]}, blob_store=store)
    url = asyncio.run(engine.generate(_request(), PATH, "user-1"))

    assert len(store.uploads) == 1
    path, content, content_type = store.uploads[0]
    assert path.startswith("temp/user-1/sync_") and path.endswith(".png")
    assert content == raw
    assert content_type == "image/png"
    assert url == f"https://storage.test/public/{path}"


def test_inline_image_without_store_fails():
    engine = _engine({"data": [{"b64_json": "aGVsbG8="}]}, blob_store=FakeBlobStore(available=False))
    with pytest.raises(BlobStoreError):
        asyncio.run(engine.generate(_request(), PATH, "user-1"))


def test_upload_failure_is_blob_store_error():
    store = FakeBlobStore(fail=True)
    engine = _engine({"data": [{"b64_json": "aGVsbG8="}]}, blob_store=store)
    with pytest.raises(BlobStoreError):
        asyncio.run(engine.generate(_request(), PATH, "user-1"))
    assert len(store.uploads) == 1


@pytest.mark.parametrize(
    "payload",
    [
        {"data": []},
        {"data": [{"revised_prompt": "x"}]},
        {"result": "ok"},
        {"data": [{"url": {"href": "http://x/img.png"}}]},
        {"data": [{"url": ["http://x/img.png"]}]},
        {"data": [{"url": "   "}]},
        {"data": [{"b64_json": {"bytes": "aGVsbG8="}}]},
        {"data": [{"url": 42, "b64_json": 7}]},
    ],
)
def test_unrecognized_shape(payload):
    store = FakeBlobStore()
    engine = _engine(payload, blob_store=store)
    with pytest.raises(UnrecognizedResponseError):
        asyncio.run(engine.generate(_request(), PATH, "user-1"))
    assert store.uploads == []


def test_non_2xx_is_rejected_with_body():
    engine = _engine({"error": {"message": "content policy"}}, status=400)
    with pytest.raises(UpstreamRejectedError) as exc_info:
        asyncio.run(engine.generate(_request(), PATH, "user-1"))
    assert exc_info.value.payload == {"error": {"message": "content policy"}}


def test_availability_requires_key():
    transport = TransportExecutor()
    assert not SyncImageEngine({"api_key": "", "base_url": "https://up.test"}, transport).is_available()
    assert SyncImageEngine({"api_key": "k", "base_url": "https://up.test"}, transport).is_available()
