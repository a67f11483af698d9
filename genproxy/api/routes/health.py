from fastapi import APIRouter, Depends, Response
from fastapi.responses import PlainTextResponse

from genproxy.api.deps import get_identity, get_ledger
from genproxy.core.config import settings
from genproxy.services.collaborators.base import CreditLedger, IdentityProvider


router = APIRouter()


@router.get("/", response_class=PlainTextResponse)
def banner() -> str:
    return "Generation Proxy Server Running (Native Multipart Mode)..."


@router.get("/health")
def health() -> dict:
    """Liveness probe - always returns 200 if app is running."""
    return {"status": "ok"}


@router.get("/ready")
def readiness(
    response: Response,
    identity: IdentityProvider = Depends(get_identity),
    ledger: CreditLedger = Depends(get_ledger),
) -> dict:
    """Readiness probe - returns 503 if collaborators or the upstream key are not configured."""
    missing = []
    if not identity.is_available():
        missing.append("identity")
    if not ledger.is_available():
        missing.append("ledger")
    if not settings.api_key:
        missing.append("upstream")
    if missing:
        response.status_code = 503
        return {"status": "not_ready", "error": f"unavailable: {', '.join(missing)}"}
    return {"status": "ready"}
