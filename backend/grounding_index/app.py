"""FastAPI application setup for the grounding index."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from grounding_index.api.dependencies import get_app_settings, get_blob_store, get_database, get_embedder
from grounding_index.api.routes_admin import router as admin_router
from grounding_index.api.routes_images import router as images_router
from grounding_index.api.routes_materials import router as materials_router
from grounding_index.core.errors import (
    ConfigurationError,
    ExtractionError,
    GroundingIndexError,
    InvalidQueryError,
    InvalidTransitionError,
    MaterialBusyError,
    NotFoundError,
    ProcessingTimeoutError,
    ProviderError,
    TransientProviderError,
    UnsupportedFormatError,
)
from grounding_index.core.logging import configure_logging, get_logger
from grounding_index.core.metrics import REQUEST_COUNT
from grounding_index.models.dto import ErrorResponse

configure_logging()
logger = get_logger(__name__)

# Most specific first; the first isinstance match wins.
_STATUS_BY_ERROR: tuple[tuple[type[GroundingIndexError], int], ...] = (
    (NotFoundError, 404),
    (InvalidQueryError, 400),
    (UnsupportedFormatError, 415),
    (ExtractionError, 422),
    (MaterialBusyError, 409),
    (InvalidTransitionError, 409),
    (TransientProviderError, 503),
    (ProcessingTimeoutError, 503),
    (ProviderError, 502),
    (ConfigurationError, 500),
)

app = FastAPI(
    title="Grounding Index",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:3000",
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(materials_router, prefix="/materials", tags=["materials"])
app.include_router(images_router, prefix="/images", tags=["images"])
app.include_router(admin_router, prefix="", tags=["admin"])


def status_for(exc: GroundingIndexError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


@app.exception_handler(GroundingIndexError)
async def handle_domain_error(request: Request, exc: GroundingIndexError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    body = ErrorResponse(detail=str(exc), error=type(exc).__name__, retryable=exc.retryable)
    return JSONResponse(status_code=status, content=body.model_dump())


@app.middleware("http")
async def count_requests(request: Request, call_next):
    response = await call_next(request)
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    REQUEST_COUNT.labels(endpoint=endpoint, method=request.method, status=str(response.status_code)).inc()
    return response


@app.on_event("startup")
async def startup() -> None:
    """Warm up core singletons on startup."""
    get_app_settings()
    get_database()
    get_blob_store()
    get_embedder()
