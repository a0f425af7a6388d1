"""
Health check route for load balancers and monitoring.
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Request

router = APIRouter(prefix="/api/health", tags=["health"])

VERSION = "1.0.0"


@router.get("")
def health_check(request: Request):
    settings = request.app.state.settings
    return {
        "status": "ok",
        "environment": settings.environment,
        "version": VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "activeJobs": len(request.app.state.registry.active()),
    }
