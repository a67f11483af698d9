"""
Error taxonomy for the billed generation proxy.
Errors raised before credits are reserved carry no side effects; every GenerationError
raised after a reservation triggers exactly one compensating refund.
"""
from enum import Enum
from typing import Any

# Bounded excerpt of upstream bodies kept on errors and surfaced to callers.
EXCERPT_LIMIT = 200
MESSAGE_LIMIT = 500


class FailureType(str, Enum):
    """Failure classes used for logs and metric labels."""

    TRANSPORT = "transport"
    UPSTREAM_REJECTED = "upstream_rejected"
    NON_STRUCTURED = "non_structured"
    TIMEOUT = "timeout"
    UNRECOGNIZED_RESPONSE = "unrecognized_response"
    TASK_FAILED = "task_failed"
    MISSING_TASK_ID = "missing_task_id"
    BLOB_STORE = "blob_store"
    INTERNAL = "internal"


def excerpt(value: Any, limit: int = EXCERPT_LIMIT) -> str:
    """Return str(value) cut to limit characters."""
    text = value if isinstance(value, str) else str(value)
    return text[:limit]


class ProxyError(Exception):
    """Base error; status_code is the HTTP status reported to the caller."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class AuthenticationError(ProxyError):
    """Missing token (401) or token rejected by identity service (403)."""

    status_code = 401


class InsufficientCreditError(ProxyError):
    status_code = 402


class ServiceUnavailableError(ProxyError):
    """A required collaborator is not configured."""

    status_code = 500


class CollaboratorError(Exception):
    """Identity, ledger or blob store call failed (network or unexpected status)."""

    def __init__(self, message: str, http_status: int | None = None) -> None:
        super().__init__(message)
        self.http_status = http_status


class GenerationError(ProxyError):
    """Any failure after dispatch; always refunded by the orchestrator."""

    failure_type = FailureType.INTERNAL


class TransportError(GenerationError):
    """Network-level failure talking to the upstream."""

    failure_type = FailureType.TRANSPORT


class UpstreamRejectedError(GenerationError):
    """Upstream answered with a non-2xx status."""

    failure_type = FailureType.UPSTREAM_REJECTED

    def __init__(self, message: str, http_status: int | None = None, payload: Any = None) -> None:
        super().__init__(message)
        self.http_status = http_status
        self.payload = payload


class NonStructuredResponseError(UpstreamRejectedError):
    """Upstream body is not JSON; raw_excerpt holds the first bytes for diagnostics."""

    failure_type = FailureType.NON_STRUCTURED

    def __init__(self, message: str, http_status: int | None = None, raw_excerpt: str = "") -> None:
        super().__init__(message, http_status=http_status, payload=None)
        self.raw_excerpt = raw_excerpt


class UpstreamTimeoutError(GenerationError):
    failure_type = FailureType.TIMEOUT

    def __init__(self, message: str, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class UnrecognizedResponseError(GenerationError):
    """Result carries neither a URL nor an inline image."""

    failure_type = FailureType.UNRECOGNIZED_RESPONSE


class TaskFailedError(GenerationError):
    """Async task reached status failed."""

    failure_type = FailureType.TASK_FAILED

    def __init__(self, message: str, payload: Any = None) -> None:
        super().__init__(message)
        self.payload = payload


class MissingTaskIdError(GenerationError):
    """Submission accepted but no task id in the response."""

    failure_type = FailureType.MISSING_TASK_ID


class BlobStoreError(GenerationError):
    """Inline image could not be persisted."""

    failure_type = FailureType.BLOB_STORE
