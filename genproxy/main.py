"""
Main FastAPI application for the billed generation proxy.
Serves the proxy endpoint, health probes and metrics.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from genproxy.api.deps import get_supabase_client
from genproxy.api.routes import generate, health
from genproxy.core.config import settings
from genproxy.core.logging import configure_logging
from genproxy.schemas.generation import ErrorBody, ErrorOut
from genproxy.services.generation.errors import MESSAGE_LIMIT, ProxyError, excerpt
from genproxy.utils.metrics import router as metrics_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    missing = settings.missing_required()
    if missing:
        logger.error(f"Missing environment variables: {', '.join(missing)}")
    else:
        logger.info("Collaborators configured", extra={"path": settings.supabase_url})
    yield
    await get_supabase_client().aclose()


app = FastAPI(
    title="Generation Proxy API",
    description="Billed proxy for sync and async image/video generation upstreams",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
origins = settings.cors_origins_list or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials="*" not in origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


def error_response(status_code: int, message: str) -> JSONResponse:
    body = ErrorOut(error=ErrorBody(message=excerpt(message or "Server Error", MESSAGE_LIMIT)))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(ProxyError)
async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
    return error_response(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    return error_response(400, f"Invalid request: {location} {first.get('msg', '')}".strip())


# Routers
app.include_router(health.router, tags=["health"])
app.include_router(generate.router)
app.include_router(metrics_router)
