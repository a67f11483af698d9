"""
Billed generation endpoint.
POST /api/proxy with Authorization: Bearer <token>; errors render as {"error": {"message": ...}}.
"""
from fastapi import APIRouter, Depends, Header

from genproxy.api.deps import get_billing_service
from genproxy.schemas.generation import ErrorOut, GenerateIn, GenerateOut, ImageOut
from genproxy.services.billing.service import BillingService

router = APIRouter(prefix="/api", tags=["generation"])


@router.post(
    "/proxy",
    response_model=GenerateOut,
    responses={code: {"model": ErrorOut} for code in (401, 402, 403, 500)},
)
async def proxy_generate(
    body: GenerateIn,
    authorization: str | None = Header(default=None),
    billing: BillingService = Depends(get_billing_service),
) -> GenerateOut:
    """Reserve credits, run the model's upstream, refund on failure."""
    result = await billing.handle(authorization, body.to_request())
    return GenerateOut(created=result.created, data=[ImageOut(url=result.url)])
