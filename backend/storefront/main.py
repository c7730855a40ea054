"""Storefront Backend: FastAPI application entry point."""

import signal
import uuid
from contextlib import asynccontextmanager

# CRITICAL ORDER: configure_structlog MUST be called before all other app imports
# to avoid the structlog cache pitfall (structlog caches the processor chain on first use).
from storefront.core.logging import configure_structlog
from storefront.core.config import get_settings as _get_settings_early

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
)

import structlog

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront.api.routes import api_router
from storefront.core.config import get_settings, validate_settings
from storefront.core.exceptions import StorefrontError
from storefront.db import init_db, close_db
from storefront.integrations.supabase import SupabaseClient
from storefront.middleware.correlation import (
    setup_correlation_middleware,
    get_correlation_id,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # SIGTERM handler flips this so the ALB health check returns 503
    app.state.shutting_down = False

    def handle_sigterm(signum, frame):
        app.state.shutting_down = True
        logger.info("sigterm_received", action="health_check_503_draining_connections")

    signal.signal(signal.SIGTERM, handle_sigterm)

    # Startup
    settings = get_settings()
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

    validate_settings(settings)
    logger.info("settings_validated")

    if settings.ledger_backend == "database":
        await init_db()
        logger.info("db_initialized")

    app.state.supabase_client = None
    if settings.supabase_url and settings.supabase_service_role_key:
        app.state.supabase_client = SupabaseClient.from_settings(settings)
        logger.info("supabase_client_initialized", supabase_url=settings.supabase_url)
    else:
        logger.warning("supabase_client_skipped", reason="not_configured")

    yield

    # Shutdown
    logger.info("shutdown_begin")
    if app.state.supabase_client is not None:
        await app.state.supabase_client.aclose()
    await close_db()
    logger.info("shutdown_complete")


def _error_response(request: Request, status_code: int, detail, event: str, **extra) -> JSONResponse:
    debug_id = str(uuid.uuid4())
    logger.error(
        event,
        status_code=status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        detail=detail,
        **extra,
    )
    # Sanitized response (no stack traces, no secrets)
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "debug_id": debug_id},
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Global exception handler for HTTPException with debug_id tracking."""
    return _error_response(request, exc.status_code, exc.detail, "http_exception")


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Map domain errors to their HTTP status with the same body shape as HTTPException."""
    return _error_response(
        request,
        exc.status_code,
        exc.detail,
        "storefront_error",
        error_type=type(exc).__name__,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled errors with debug_id tracking.

    Logs full exception with traceback, returns generic 500 to client.
    """
    debug_id = str(uuid.uuid4())

    logger.error(
        "unhandled_exception",
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )

    # Return generic 500 (no internal details leaked)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "debug_id": debug_id},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(StorefrontError)(storefront_error_handler)
    app.exception_handler(Exception)(generic_exception_handler)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Digital item storefront: checkout, purchase webhook, and entitlement-gated downloads",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(dict.fromkeys([settings.frontend_url, *settings.cors_allowed_origins])),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Correlation ID middleware (runs first on incoming requests)
    setup_correlation_middleware(app)

    register_exception_handlers(app)

    app.include_router(api_router, prefix="/api")

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "storefront.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
