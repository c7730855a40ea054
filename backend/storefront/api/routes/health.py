import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from storefront.core.config import get_settings

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint for load balancer.

    Returns 503 during graceful shutdown so ALB stops routing traffic.
    """
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(
            status_code=503,
            content={"status": "shutting_down", "service": "storefront-backend"},
        )
    return {"status": "healthy", "service": "storefront-backend"}


@router.get("/ready")
async def readiness_check(request: Request):
    """Readiness check - verifies the ledger database and Supabase client are available."""
    checks = {"supabase": getattr(request.app.state, "supabase_client", None) is not None}

    if get_settings().ledger_backend == "database":
        checks["database"] = False
        try:
            from storefront.db.base import get_session_factory

            async with get_session_factory()() as session:
                await session.execute(text("SELECT 1"))
            checks["database"] = True
        except Exception as e:
            logger.error("readiness_database_failed", error=str(e))

    all_healthy = all(checks.values())
    status_code = 200 if all_healthy else 503

    return JSONResponse(
        status_code=status_code,
        content={"status": "ready" if all_healthy else "degraded", "checks": checks},
    )
