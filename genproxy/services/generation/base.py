"""
Base types shared by the registry, the engines and the billing orchestrator.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum


class BackendKind(str, Enum):
    SYNC = "sync"
    ASYNC = "async"


@dataclass(frozen=True)
class GenerationRequest:
    """Inbound generation call; built once per request and never mutated."""
    model: str
    prompt: str
    size: str | None = None
    images: tuple[str, ...] = ()  # data URIs, in caller order


@dataclass(frozen=True)
class MultipartPart:
    """One part of a multipart/form-data body. filename/content_type only for file parts."""
    name: str
    content: bytes
    filename: str | None = None
    content_type: str | None = None


class TaskStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def parse(cls, value: object) -> "TaskStatus":
        """Map an upstream status string; unknown values count as still processing."""
        status = str(value or "").strip().lower()
        if status in ("completed", "succeeded"):
            return cls.COMPLETED
        if status == "failed":
            return cls.FAILED
        if status in ("queued", "pending", "submitted"):
            return cls.QUEUED
        return cls.PROCESSING


@dataclass
class AsyncTask:
    """Upstream task as observed by the poll loop. Never persisted."""
    id: str
    status: TaskStatus = TaskStatus.QUEUED
    result_url: str | None = None
    attempts: int = 0
    last_payload: dict = field(default_factory=dict)


class GenerationEngine(ABC):
    """Base class for upstream engines. Config is a plain dict built by the factory."""

    backend: BackendKind

    def __init__(self, config: dict) -> None:
        self.config = config

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the engine is configured (upstream key present)."""
        pass

    @abstractmethod
    async def generate(self, request: GenerationRequest, path: str, user_id: str) -> str:
        """Run the generation and return the result URL. Raises GenerationError on failure."""
        pass
