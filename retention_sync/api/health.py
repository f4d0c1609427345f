"""Health check and metrics endpoints."""

from fastapi import APIRouter, Request, Response
from datetime import datetime, timezone
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from retention_sync.core.config import get_settings
from retention_sync.core.database import database

router = APIRouter()
settings = get_settings()


@router.get("/health")
async def health_check():
    """Basic health check."""
    return {
        "status": "healthy",
        "service": settings.service_name,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/detailed")
async def detailed_health_check(request: Request):
    """Detailed health check with database connectivity and sync engine state."""
    health_status = {
        "status": "healthy",
        "service": settings.service_name,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": {"status": "unknown"},
            "sync_engine": {"status": "unknown"},
        }
    }
    
    # Check MongoDB
    try:
        if database.client:
            await database.client.admin.command("ping")
            health_status["checks"]["database"]["status"] = "healthy"
        else:
            health_status["checks"]["database"]["status"] = "disconnected"
            health_status["status"] = "degraded"
    except Exception as e:
        health_status["checks"]["database"]["status"] = "unhealthy"
        health_status["checks"]["database"]["error"] = str(e)
        health_status["status"] = "unhealthy"
    
    # Check worker pool and scheduler
    sync_service = getattr(request.app.state, "sync_service", None)
    if sync_service is not None and sync_service.worker_pool.running:
        health_status["checks"]["sync_engine"] = {
            "status": "healthy",
            "scheduled_integrations": len(sync_service.scheduler),
            "queued_syncs": sync_service.worker_pool.pending,
        }
    else:
        health_status["checks"]["sync_engine"]["status"] = "stopped"
        health_status["status"] = "degraded"
    
    return health_status


@router.get("/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
