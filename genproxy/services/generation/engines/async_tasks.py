"""
Asynchronous task engine: submit a task, then poll it by id.

Submission strategies are tried in order, each with its own failure boundary.
The poll loop sleeps before every attempt, treats non-2xx, non-JSON and network errors
as transient (each still consumes an attempt) and stops on completed/succeeded, failed,
or when the attempt budget is exhausted.
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable
from urllib.parse import quote

from genproxy.services.generation import multipart
from genproxy.services.generation.base import (
    AsyncTask,
    BackendKind,
    GenerationEngine,
    GenerationRequest,
    TaskStatus,
)
from genproxy.services.generation.errors import (
    MissingTaskIdError,
    TaskFailedError,
    TransportError,
    UnrecognizedResponseError,
    UpstreamRejectedError,
    UpstreamTimeoutError,
    excerpt,
)
from genproxy.services.generation.transport import TransportExecutor
from genproxy.utils.metrics import async_poll_attempts

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_MAX_ATTEMPTS = 60


class SubmissionStrategy(ABC):
    """Builds the submission request body and its content headers."""

    name: str

    @abstractmethod
    def build(self, request: GenerationRequest, size: str, image_field: str) -> tuple[dict[str, str], bytes]:
        pass


class MultipartSubmission(SubmissionStrategy):
    """model/prompt/size as fields, images as binary file parts."""

    name = "multipart"

    def build(self, request: GenerationRequest, size: str, image_field: str) -> tuple[dict[str, str], bytes]:
        fields = {"model": request.model, "prompt": request.prompt, "size": size}
        files = multipart.image_parts(request.images, field_name=image_field)
        boundary, body = multipart.encode(fields, files)
        headers = {
            "Content-Type": multipart.content_type_header(boundary),
            "Content-Length": str(len(body)),
        }
        return headers, body


class JsonSubmission(SubmissionStrategy):
    """Same fields as JSON; images passed through as data URIs."""

    name = "json"

    def build(self, request: GenerationRequest, size: str, image_field: str) -> tuple[dict[str, str], bytes]:
        payload: dict[str, Any] = {"model": request.model, "prompt": request.prompt, "size": size}
        images = [img for img in request.images if multipart.decode_data_uri(img) is not None]
        if images:
            payload["images"] = images
        body = json.dumps(payload).encode("utf-8")
        return {"Content-Type": "application/json", "Content-Length": str(len(body))}, body


STRATEGIES: dict[str, type[SubmissionStrategy]] = {
    MultipartSubmission.name: MultipartSubmission,
    JsonSubmission.name: JsonSubmission,
}


def extract_task_id(data: Any) -> str | None:
    """Task id from {"id": ...} or {"data": {"id": ...}}."""
    if not isinstance(data, dict):
        return None
    task_id = data.get("id")
    if not task_id and isinstance(data.get("data"), dict):
        task_id = data["data"].get("id")
    return str(task_id) if task_id else None


def extract_result_url(data: dict) -> str | None:
    """First non-empty of video_url, url, images[0]."""
    for key in ("video_url", "url"):
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    images = data.get("images")
    if isinstance(images, list) and images:
        first = images[0]
        if isinstance(first, dict):
            first = first.get("url")
        if isinstance(first, str) and first:
            return first
    return None


class AsyncTaskEngine(GenerationEngine):
    """Task upstream (/v1/videos): multipart submission + bounded polling."""

    backend = BackendKind.ASYNC

    def __init__(
        self,
        config: dict,
        transport: TransportExecutor,
        strategies: list[SubmissionStrategy] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        super().__init__(config)
        self.api_key = config.get("api_key") or ""
        self.base_url = (config.get("base_url") or "").rstrip("/")
        self.poll_interval = float(config.get("poll_interval", DEFAULT_POLL_INTERVAL))
        self.max_attempts = int(config.get("max_attempts", DEFAULT_MAX_ATTEMPTS))
        self.default_size = config.get("default_size") or "16:9"
        self.image_field = config.get("image_field") or "image"
        self.transport = transport
        self.strategies = strategies or [MultipartSubmission()]
        self._sleep = sleep

    def is_available(self) -> bool:
        return bool(self.api_key and self.base_url)

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def generate(self, request: GenerationRequest, path: str, user_id: str) -> str:
        task_id = await self.submit(request, path)
        logger.info("async_task_submitted", extra={"user_id": user_id, "model": request.model, "task_id": task_id})
        task = await self.poll(task_id, path)
        return task.result_url

    async def submit(self, request: GenerationRequest, path: str) -> str:
        url = f"{self.base_url}{path}"
        size = request.size or self.default_size
        last_error: Exception | None = None
        for strategy in self.strategies:
            headers, body = strategy.build(request, size, self.image_field)
            headers.update(self._auth_headers())
            logger.info(
                "async_submit",
                extra={"model": request.model, "strategy": strategy.name, "payload_bytes": len(body)},
            )
            try:
                data = await self.transport.send("POST", url, headers=headers, body=body)
                task_id = extract_task_id(data)
                if not task_id:
                    raise MissingTaskIdError(
                        f"Submission accepted but no task id: {excerpt(json.dumps(data, ensure_ascii=False))}"
                    )
                return task_id
            except (TransportError, UpstreamRejectedError, MissingTaskIdError) as e:
                last_error = e
                logger.warning(
                    "async_submit_strategy_failed",
                    extra={"model": request.model, "strategy": strategy.name, "error": str(e)},
                )
        raise last_error

    async def poll(self, task_id: str, path: str) -> AsyncTask:
        """Poll until a terminal status. Raises TaskFailedError or UpstreamTimeoutError."""
        url = f"{self.base_url}{path}/{quote(task_id, safe='')}"
        task = AsyncTask(id=task_id)
        while task.attempts < self.max_attempts:
            await self._sleep(self.poll_interval)
            task.attempts += 1
            try:
                data = await self.transport.send("GET", url, headers=self._auth_headers())
            except (TransportError, UpstreamRejectedError) as e:
                logger.info("async_poll_transient", extra={"task_id": task_id, "attempt": task.attempts, "error": str(e)})
                continue
            if not isinstance(data, dict):
                continue

            task.last_payload = data
            task.status = TaskStatus.parse(data.get("status"))
            if task.status is TaskStatus.COMPLETED:
                async_poll_attempts.observe(task.attempts)
                task.result_url = extract_result_url(data)
                if not task.result_url:
                    raise UnrecognizedResponseError(
                        f"Task {task_id} completed without a result url: "
                        f"{excerpt(json.dumps(data, ensure_ascii=False))}"
                    )
                return task
            if task.status is TaskStatus.FAILED:
                async_poll_attempts.observe(task.attempts)
                raise TaskFailedError(
                    f"Generation failed: {excerpt(json.dumps(data, ensure_ascii=False))}",
                    payload=data,
                )

        async_poll_attempts.observe(task.attempts)
        raise UpstreamTimeoutError(
            f"Task {task_id} timed out after {task.attempts} poll attempts",
            attempts=task.attempts,
        )
