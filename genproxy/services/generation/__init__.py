"""
Generation dispatch: model registry, upstream engines (sync / async task), multipart encoding.
"""
from .base import (
    AsyncTask,
    BackendKind,
    GenerationEngine,
    GenerationRequest,
    MultipartPart,
    TaskStatus,
)
from .errors import (
    AuthenticationError,
    GenerationError,
    InsufficientCreditError,
    ProxyError,
    ServiceUnavailableError,
)
from .factory import EngineFactory
from .registry import ModelConfig, ModelRegistry

__all__ = [
    "AsyncTask",
    "BackendKind",
    "GenerationEngine",
    "GenerationRequest",
    "MultipartPart",
    "TaskStatus",
    "AuthenticationError",
    "GenerationError",
    "InsufficientCreditError",
    "ProxyError",
    "ServiceUnavailableError",
    "EngineFactory",
    "ModelConfig",
    "ModelRegistry",
]
