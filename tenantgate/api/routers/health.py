"""Health check API router."""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tenantgate.infra.database import get_db, ping
from tenantgate.infra.metrics import get_metrics_response

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "ok",
        "service": "tenantgate",
        "version": "1.0.0",
    }


@router.get("/health/live", tags=["Health"])
async def liveness_probe():
    """Liveness probe - the process is up and serving."""
    return {"status": "alive"}


@router.get("/health/ready", tags=["Health"])
def readiness_probe(request: Request, db: Session = Depends(get_db)):
    """
    Readiness probe.

    Ready once the shared tenant directory answers; tenant stores are not
    probed, only the number of cached tenant connections is reported.
    """
    registry = getattr(request.app.state, "registry", None)
    checks = {"tenant_connections": registry.active_count if registry is not None else 0}

    try:
        ping(db)
    except SQLAlchemyError as e:
        logger.error("Tenant directory not reachable", extra={"error": str(e)})
        checks["directory"] = "unavailable"
        return JSONResponse(status_code=503, content={"status": "not_ready", "checks": checks})

    checks["directory"] = "ok"
    return {"status": "ready", "checks": checks}


@router.get("/metrics", tags=["Health"])
async def metrics():
    """Prometheus metrics endpoint."""
    return get_metrics_response()
