"""
System / health / metrics API router.

Handles the root endpoint, health check and engine metrics.
"""

import asyncio
import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from weatherlayers import __version__
from weatherlayers.metrics import metrics
from weatherlayers_api.state import get_app_state

router = APIRouter(tags=["System"])

logger = logging.getLogger(__name__)


@router.get("/")
async def root():
    """
    API root endpoint.

    Returns basic API information and available endpoint categories.
    """
    return {
        "name": "Weather Layers API",
        "version": __version__,
        "status": "operational",
        "docs": "/api/docs",
        "endpoints": {
            "health": "/api/health",
            "metrics": "/api/metrics",
            "layers": "/api/layers/...",
            "merge_strategy": "/api/merge-strategy",
            "time": "/api/time/...",
            "query": "/api/query/...",
        }
    }


@router.get("/api/health")
async def health_check():
    """
    Health check endpoint for load balancers and orchestrators.

    Reports "healthy" when at least one enabled layer holds data and
    "degraded" while the layer set is empty.
    """
    components = await asyncio.to_thread(get_app_state().health_check)
    status = "healthy" if components["layer_set"] == "healthy" else "degraded"
    return {
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "components": components,
    }


@router.get("/api/metrics")
async def get_metrics():
    """
    Engine metrics in JSON format.

    Timeline build timings, cache hit rate and query counters.
    """
    return metrics.get_summary()
