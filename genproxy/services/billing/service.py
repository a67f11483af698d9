"""
Billing orchestrator: authenticate, price, reserve, dispatch, reconcile.

Every reservation ends either committed (engine returned a URL) or refunded (anything
raised after the debit). The refund is attempted once; a failed refund is logged and
counted, not retried.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from genproxy.services.collaborators.base import AuthenticatedUser, CreditLedger, IdentityProvider
from genproxy.services.generation.base import BackendKind, GenerationEngine, GenerationRequest
from genproxy.services.generation.errors import (
    AuthenticationError,
    CollaboratorError,
    FailureType,
    GenerationError,
    InsufficientCreditError,
    ServiceUnavailableError,
)
from genproxy.services.generation.registry import ModelRegistry
from genproxy.utils.metrics import (
    credit_operations_total,
    credit_rejected_total,
    generation_duration_seconds,
    generation_requests_total,
)

logger = logging.getLogger(__name__)


class ReservationState(str, Enum):
    RESERVED = "reserved"
    COMMITTED = "committed"
    REFUNDED = "refunded"


@dataclass
class CreditReservation:
    user_id: str
    amount: int
    state: ReservationState = ReservationState.RESERVED

    def _transition(self, new_state: ReservationState) -> None:
        if self.state is not ReservationState.RESERVED:
            raise RuntimeError(f"reservation already {self.state.value}")
        self.state = new_state

    def commit(self) -> None:
        self._transition(ReservationState.COMMITTED)

    def mark_refunded(self) -> None:
        self._transition(ReservationState.REFUNDED)


@dataclass(frozen=True)
class GenerationResult:
    url: str
    created: int  # ms since epoch
    model: str
    backend: BackendKind
    cost: int


def parse_bearer(authorization: str | None) -> str | None:
    """Token from 'Bearer <token>'; None when absent."""
    _, _, token = (authorization or "").strip().partition(" ")
    return token.strip() or None


class BillingService:
    def __init__(
        self,
        identity: IdentityProvider,
        ledger: CreditLedger,
        registry: ModelRegistry,
        engines: Mapping[BackendKind, GenerationEngine],
    ) -> None:
        self.identity = identity
        self.ledger = ledger
        self.registry = registry
        self.engines = engines

    async def authenticate(self, authorization: str | None) -> AuthenticatedUser:
        if not authorization or not authorization.strip():
            raise AuthenticationError("No Token", status_code=401)
        token = parse_bearer(authorization)
        if not token:
            raise AuthenticationError("Invalid Token", status_code=403)
        try:
            user = await self.identity.get_user(token)
        except CollaboratorError as e:
            logger.error("identity_lookup_failed", extra={"error": str(e)})
            raise ServiceUnavailableError("Identity service unavailable") from e
        if user is None:
            raise AuthenticationError("Invalid Token", status_code=403)
        return user

    async def reserve(self, user: AuthenticatedUser, amount: int) -> CreditReservation:
        try:
            ok = await self.ledger.decrement(user.id, amount)
        except CollaboratorError as e:
            logger.error("credit_reserve_failed", extra={"user_id": user.id, "amount": amount, "error": str(e)})
            raise ServiceUnavailableError("Credit ledger unavailable") from e
        if not ok:
            credit_rejected_total.inc()
            raise InsufficientCreditError("Insufficient credits")
        credit_operations_total.labels(operation="RESERVE").inc()
        logger.info("credit_reserved", extra={"user_id": user.id, "amount": amount})
        return CreditReservation(user_id=user.id, amount=amount)

    async def refund(self, reservation: CreditReservation) -> None:
        """Single compensating credit; failure is logged and left for manual reconciliation."""
        try:
            await self.ledger.increment(reservation.user_id, reservation.amount)
        except Exception as e:
            credit_operations_total.labels(operation="REFUND_FAILED").inc()
            logger.error(
                "credit_refund_failed",
                extra={"user_id": reservation.user_id, "amount": reservation.amount, "error": str(e)},
            )
            return
        reservation.mark_refunded()
        credit_operations_total.labels(operation="REFUND").inc()
        logger.info("credit_refunded", extra={"user_id": reservation.user_id, "amount": reservation.amount})

    async def handle(self, authorization: str | None, request: GenerationRequest) -> GenerationResult:
        if not (self.identity.is_available() and self.ledger.is_available()):
            raise ServiceUnavailableError("Database not connected")

        user = await self.authenticate(authorization)
        # Cost comes from the registry only, never from the caller
        config = self.registry.resolve(request.model)
        engine = self.engines[config.backend]
        if not engine.is_available():
            raise ServiceUnavailableError("Upstream API is not configured")

        logger.info(
            "generation_dispatch",
            extra={"user_id": user.id, "model": request.model, "backend": config.backend.value, "amount": config.cost},
        )
        reservation = await self.reserve(user, config.cost)

        start = time.monotonic()
        try:
            url = await engine.generate(request, config.path, user.id)
        except asyncio.CancelledError:
            await self.refund(reservation)
            raise
        except Exception as e:
            failure = e.failure_type if isinstance(e, GenerationError) else FailureType.INTERNAL
            generation_requests_total.labels(backend=config.backend.value, outcome=failure.value).inc()
            logger.error(
                "generation_failed",
                exc_info=True,
                extra={"user_id": user.id, "model": request.model, "backend": config.backend.value, "error": str(e)},
            )
            await self.refund(reservation)
            if isinstance(e, GenerationError):
                raise
            raise GenerationError(str(e) or "Server Error") from e

        reservation.commit()
        duration = time.monotonic() - start
        generation_duration_seconds.labels(backend=config.backend.value).observe(duration)
        generation_requests_total.labels(backend=config.backend.value, outcome="success").inc()
        logger.info(
            "generation_succeeded",
            extra={
                "user_id": user.id,
                "model": request.model,
                "backend": config.backend.value,
                "latency_ms": int(duration * 1000),
            },
        )
        return GenerationResult(
            url=url,
            created=int(time.time() * 1000),
            model=request.model,
            backend=config.backend,
            cost=config.cost,
        )
