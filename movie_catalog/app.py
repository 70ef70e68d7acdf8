"""
FastAPI application.

Wires the layers together:
- Domain: entities and exceptions
- Infrastructure: remote catalog client
- Repositories: SQL genre and movie stores
- Services: movie repository orchestration
- Routers: HTTP endpoints
"""

import time
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .bootstrap import CatalogContext, build_context
from .config import CatalogSettings
from .domain.exceptions import (
    CatalogUnavailableException,
    DataIntegrityException,
    MovieCatalogException,
    NotFoundException,
    RateLimitExceededException,
    ValidationException,
)
from .logging_config import configure_logging
from .metrics import metrics_endpoint, track_request_metrics
from .routers import genres, health, movies, wishlist

logger = structlog.get_logger(__name__)

# Most specific first
ERROR_STATUS = (
    (NotFoundException, 404, "not_found"),
    (RateLimitExceededException, 429, "rate_limited"),
    (CatalogUnavailableException, 503, "catalog_unavailable"),
    (DataIntegrityException, 502, "data_integrity_error"),
    (ValidationException, 422, "validation_error"),
)


def error_status(exc: MovieCatalogException):
    for exc_type, status_code, code in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status_code, code
    return 500, "internal_error"


def create_app(
    settings: Optional[CatalogSettings] = None,
    context: Optional[CatalogContext] = None,
) -> FastAPI:
    """
    Create the FastAPI app.

    Args:
        settings: Settings; loaded from the environment when omitted
        context: Prebuilt context (tests); built from settings at startup otherwise
    """
    settings = settings or (context.settings if context else CatalogSettings.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        configure_logging(settings.log_level, settings.log_json)
        logger.info("Starting movie catalog cache...")

        app.state.context = context or build_context(settings)
        await app.state.context.repository.start()
        logger.info("Movie catalog cache started")

        yield

        logger.info("Shutting down movie catalog cache...")
        await app.state.context.close()
        app.state.context = None
        logger.info("Movie catalog cache shut down complete")

    app = FastAPI(
        title="Movie Catalog Cache",
        description="Local cache over a remote movie catalog",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        """Add request ID for tracing."""
        request_id = request.headers.get("X-Request-ID", f"req-{id(request)}")
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        structlog.contextvars.clear_contextvars()
        return response

    @app.middleware("http")
    async def track_metrics(request: Request, call_next):
        """Track Prometheus metrics."""
        start_time = time.time()
        response = await call_next(request)
        route = request.scope.get("route")
        endpoint = route.path if route is not None else request.url.path
        track_request_metrics(
            request.method, endpoint, response.status_code, time.time() - start_time
        )
        return response

    app.include_router(movies.router)
    app.include_router(genres.router)
    app.include_router(wishlist.router)
    app.include_router(health.router)
    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], include_in_schema=False)

    @app.exception_handler(MovieCatalogException)
    async def catalog_exception_handler(request: Request, exc: MovieCatalogException):
        """Map domain exceptions onto HTTP errors."""
        status_code, code = error_status(exc)
        log = logger.error if status_code >= 500 else logger.warning
        log(
            "Request failed",
            path=request.url.path,
            error=code,
            message=exc.message,
        )

        headers = {}
        retry_after = getattr(exc, "retry_after", None)
        if retry_after:
            headers["Retry-After"] = str(retry_after)

        return JSONResponse(
            status_code=status_code,
            content={"error": code, "message": exc.message, "details": exc.details},
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle all unhandled exceptions."""
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "details": {},
            },
        )

    return app
