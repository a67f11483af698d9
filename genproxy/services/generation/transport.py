"""
Transport executor for the generation upstream.
One short-lived client per request (no keep-alive, Connection: close): pooled connections
to this upstream produced intermittent 502/EOF failures.
"""
import json
import logging
import time
from typing import Any

import httpx

from genproxy.services.generation.errors import (
    NonStructuredResponseError,
    TransportError,
    UpstreamRejectedError,
    excerpt,
)

logger = logging.getLogger(__name__)


class TransportExecutor:
    """Sends a single request and returns the parsed JSON body of a 2xx response."""

    def __init__(
        self,
        timeout: float = 120.0,
        verify_tls: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self.verify_tls = verify_tls
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            verify=self.verify_tls,
            limits=httpx.Limits(max_keepalive_connections=0),
            transport=self._transport,
        )

    async def send(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
    ) -> Any:
        """
        Raises:
            TransportError: network failure, timeout
            NonStructuredResponseError: body is not JSON (first 200 chars kept)
            UpstreamRejectedError: non-2xx status with a JSON body
        """
        request_headers = {"Connection": "close"}
        request_headers.update(headers or {})
        start = time.monotonic()
        try:
            async with self._client() as client:
                response = await client.request(method, url, headers=request_headers, content=body)
                raw = response.content
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {type(e).__name__}: {e}") from e

        latency_ms = int((time.monotonic() - start) * 1000)
        logger.debug(
            "upstream_response",
            extra={"method": method, "path": url, "status_code": response.status_code, "latency_ms": latency_ms},
        )

        text = raw.decode("utf-8", errors="replace")
        try:
            payload = json.loads(text)
        except ValueError:
            raw_excerpt = excerpt(text)
            raise NonStructuredResponseError(
                f"Upstream returned a non-JSON response [{response.status_code}]: {raw_excerpt}",
                http_status=response.status_code,
                raw_excerpt=raw_excerpt,
            ) from None

        if not response.is_success:
            raise UpstreamRejectedError(
                f"Upstream rejected request [{response.status_code}]: {excerpt(json.dumps(payload, ensure_ascii=False))}",
                http_status=response.status_code,
                payload=payload,
            )
        return payload
