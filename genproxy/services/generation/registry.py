"""
Model registry: model name -> backend kind, upstream path, credit cost.
Read-only after construction; unknown names resolve to the "default" entry.
"""
import json
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

from genproxy.services.generation.base import BackendKind

logger = logging.getLogger(__name__)

DEFAULT_MODEL_KEY = "default"
ASYNC_PATH = "/v1/videos"
SYNC_PATH = "/v1/images/generations"


@dataclass(frozen=True)
class ModelConfig:
    backend: BackendKind
    path: str
    cost: int

    def __post_init__(self) -> None:
        if not isinstance(self.cost, int) or isinstance(self.cost, bool) or self.cost <= 0:
            raise ValueError(f"credit cost must be a positive integer, got {self.cost!r}")
        if not self.path.startswith("/"):
            raise ValueError(f"upstream path must start with '/', got {self.path!r}")


BUILTIN_MODELS: dict[str, ModelConfig] = {
    "gemini-3-pro-image-preview-async": ModelConfig(BackendKind.ASYNC, ASYNC_PATH, 5),
    "gemini-3-pro-image-preview-2k-async": ModelConfig(BackendKind.ASYNC, ASYNC_PATH, 10),
    "gemini-3-pro-image-preview-4k-async": ModelConfig(BackendKind.ASYNC, ASYNC_PATH, 15),
    "gemini-3-pro-image-preview": ModelConfig(BackendKind.SYNC, SYNC_PATH, 5),
    "dall-e-3": ModelConfig(BackendKind.SYNC, SYNC_PATH, 20),
    DEFAULT_MODEL_KEY: ModelConfig(BackendKind.ASYNC, ASYNC_PATH, 5),
}


def _parse_entry(name: str, raw: Any) -> ModelConfig:
    if not isinstance(raw, dict):
        raise ValueError(f"registry entry {name!r} must be an object")
    try:
        backend = BackendKind(str(raw.get("backend", "")).strip().lower())
    except ValueError:
        raise ValueError(f"registry entry {name!r}: unknown backend {raw.get('backend')!r}") from None
    return ModelConfig(backend=backend, path=str(raw.get("path", "")), cost=raw.get("cost"))


class ModelRegistry:
    """Exact-match lookup with fallback to the default entry."""

    def __init__(self, models: Mapping[str, ModelConfig] | None = None) -> None:
        table = dict(BUILTIN_MODELS if models is None else models)
        if DEFAULT_MODEL_KEY not in table:
            raise ValueError("model registry requires a 'default' entry")
        self._models = MappingProxyType(table)

    @classmethod
    def from_json(cls, overrides_json: str) -> "ModelRegistry":
        """Built-in table with entries from a JSON object merged over it."""
        table = dict(BUILTIN_MODELS)
        if overrides_json and overrides_json.strip():
            parsed = json.loads(overrides_json)
            if not isinstance(parsed, dict):
                raise ValueError("model_registry_json must be a JSON object")
            for name, raw in parsed.items():
                table[name] = _parse_entry(name, raw)
            logger.info("model_registry_overrides_loaded", extra={"model": ",".join(sorted(parsed))})
        return cls(table)

    @classmethod
    def from_settings(cls, settings) -> "ModelRegistry":
        return cls.from_json(getattr(settings, "model_registry_json", "") or "")

    def resolve(self, model_name: str | None) -> ModelConfig:
        return self._models.get(model_name or "", self._models[DEFAULT_MODEL_KEY])
