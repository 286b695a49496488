"""
System / health / metrics API router.

Handles health checks, the metrics summary and the root endpoint.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from seaplan import __version__
from seaplan.metrics import get_metrics
from api.state import get_app_state

router = APIRouter(tags=["System"])

logger = logging.getLogger(__name__)


@router.get("/")
async def root():
    """
    API root endpoint.

    Returns basic API information and available endpoint categories.
    """
    return {
        "name": "SEAPLAN API",
        "version": __version__,
        "status": "operational",
        "docs": "/api/docs",
        "endpoints": {
            "health": "/api/health",
            "metrics": "/api/metrics",
            "route": "/api/route/...",
            "grid": "/api/grid/...",
        },
    }


@router.get("/api/health")
def health_check():
    """
    Health check.

    ``degraded`` means the service is up but no grid is loaded, so route
    planning requests will fail with 503.
    """
    app_state = get_app_state()
    components = app_state.health_check()
    status = "healthy" if components["grid"] == "healthy" else "degraded"
    return {
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "components": components,
        "grid": app_state.grid.status(),
    }


@router.get("/api/metrics")
def metrics_summary():
    """Counters, gauges and timings collected by the routing core."""
    return get_metrics().get_summary()
