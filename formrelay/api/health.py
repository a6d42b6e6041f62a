"""
Endpoints de santé (load balancers, monitoring).
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from formrelay.core.config import settings
from formrelay.core.dependencies import Services, get_services

router = APIRouter(tags=["health"])

VERSION = "1.0.0"


@router.get("/")
async def root():
    """Page d'accueil de l'API."""
    return {
        "name": settings.app_name,
        "version": VERSION,
        "status": "running",
        "environment": settings.app_env,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/health")
async def health_check(services: Services = Depends(get_services)):
    """
    Endpoint de health check.

    Vérifie le store et expose l'état du pool de dispatch.
    """
    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {}
    }

    # Check store
    try:
        if not await services.store.ping():
            raise ConnectionError("ping failed")
        health_status["services"]["store"] = "ok"
    except Exception as e:
        health_status["services"]["store"] = f"error: {str(e)[:50]}"
        health_status["status"] = "degraded"

    # Pool de dispatch
    pool_stats = services.dispatch_pool.stats()
    health_status["services"]["dispatch"] = pool_stats
    if not pool_stats["running"]:
        health_status["status"] = "degraded"

    if services.scheduler is not None:
        health_status["services"]["scheduler"] = (
            "running" if services.scheduler.is_running else "stopped"
        )

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JSONResponse(content=health_status, status_code=status_code)


@router.get("/ready")
async def readiness_check():
    """
    Endpoint de readiness check.

    Vérifie que l'application est prête à recevoir du trafic.
    """
    return {"status": "ready", "timestamp": datetime.now(timezone.utc).isoformat()}
