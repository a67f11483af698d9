"""
Synchronous image engine: one JSON POST, result returned in the response.
Inline base64 results are persisted to the blob store under temp/<user>/sync_<ms>.png.
"""
import base64
import binascii
import json
import logging
import time

from genproxy.services.collaborators.base import BlobStore
from genproxy.services.generation.base import (
    BackendKind,
    GenerationEngine,
    GenerationRequest,
)
from genproxy.services.generation.errors import (
    BlobStoreError,
    CollaboratorError,
    UnrecognizedResponseError,
    excerpt,
)
from genproxy.services.generation.transport import TransportExecutor

logger = logging.getLogger(__name__)

DEFAULT_PIXEL_SIZE = "1024x1024"
PIXEL_SIZES = {
    "1:1": "1024x1024",
    "16:9": "1792x1024",
    "3:4": "1024x1792",
    "9:16": "1024x1792",
}


def pixel_size(size: str | None) -> str:
    """Aspect ratio -> upstream WxH; anything unknown becomes square."""
    return PIXEL_SIZES.get((size or "").strip(), DEFAULT_PIXEL_SIZE)


class SyncImageEngine(GenerationEngine):
    """OpenAI-style /v1/images/generations upstream."""

    backend = BackendKind.SYNC

    def __init__(self, config: dict, transport: TransportExecutor, blob_store: BlobStore | None = None) -> None:
        super().__init__(config)
        self.api_key = config.get("api_key") or ""
        self.base_url = (config.get("base_url") or "").rstrip("/")
        self.storage_prefix = (config.get("storage_prefix") or "temp").strip("/")
        self.transport = transport
        self.blob_store = blob_store

    def is_available(self) -> bool:
        return bool(self.api_key and self.base_url)

    async def generate(self, request: GenerationRequest, path: str, user_id: str) -> str:
        payload = {
            "model": request.model,
            "prompt": request.prompt,
            "size": pixel_size(request.size),
            "n": 1,
            "response_format": "url",
        }
        data = await self.transport.send(
            "POST",
            f"{self.base_url}{path}",
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.api_key}",
            },
            body=json.dumps(payload).encode("utf-8"),
        )

        items = data.get("data") if isinstance(data, dict) else None
        if isinstance(items, list) and items and isinstance(items[0], dict):
            item = items[0]
            url, b64_image = item.get("url"), item.get("b64_json")
            # only non-empty strings count as a result; anything else is refunded
            if isinstance(url, str) and url.strip():
                return url
            if isinstance(b64_image, str) and b64_image.strip():
                return await self._persist_inline(b64_image, user_id)
        raise UnrecognizedResponseError(
            f"Unrecognized upstream response shape: {excerpt(json.dumps(data, ensure_ascii=False))}"
        )

    async def _persist_inline(self, b64_image: str, user_id: str) -> str:
        if self.blob_store is None or not self.blob_store.is_available():
            raise BlobStoreError("Blob store unavailable, cannot persist inline image")
        try:
            content = base64.b64decode(b64_image)
        except (binascii.Error, ValueError) as e:
            raise UnrecognizedResponseError(f"Inline image is not valid base64: {e}") from e

        path = f"{self.storage_prefix}/{user_id}/sync_{int(time.time() * 1000)}.png"
        try:
            await self.blob_store.upload(path, content, "image/png")
        except CollaboratorError as e:
            raise BlobStoreError(f"Failed to persist inline image: {e}") from e
        logger.info("inline_image_persisted", extra={"user_id": user_id, "path": path, "payload_bytes": len(content)})
        return self.blob_store.public_url(path)
