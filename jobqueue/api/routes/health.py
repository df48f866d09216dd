"""
Health check routes.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from jobqueue import __version__
from jobqueue.errors import StoreUnavailableError
from jobqueue.observability.metrics import get_metrics
from jobqueue.store import get_store
from jobqueue.store.base import Store
from jobqueue.types.api import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


async def _store_reachable(store: Store) -> bool:
    try:
        return await store.ping()
    except StoreUnavailableError as e:
        logger.warning(f"Store ping failed: {e}")
        return False


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health of the API and store connection.",
)
async def health_check(store: Store = Depends(get_store)) -> HealthResponse:
    """
    Perform a health check.

    Checks store connectivity and returns service status.

    Args:
        store: The shared store.

    Returns:
        HealthResponse with service status.
    """
    store_status = "healthy" if await _store_reachable(store) else "unhealthy"

    return HealthResponse(
        status="healthy" if store_status == "healthy" else "degraded",
        version=__version__,
        store=store_status,
        timestamp=datetime.now(timezone.utc),
    )


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the service is ready to receive traffic.",
)
async def readiness_check(store: Store = Depends(get_store)) -> dict:
    """
    Kubernetes readiness probe endpoint.

    Args:
        store: The shared store.

    Returns:
        Ready status.
    """
    return {"ready": await _store_reachable(store)}


@router.get(
    "/live",
    summary="Liveness check",
    description="Check if the service is alive.",
)
async def liveness_check() -> dict:
    """Kubernetes liveness probe endpoint."""
    return {"alive": True}


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics.",
)
async def metrics() -> Response:
    """
    Expose Prometheus metrics.

    Returns:
        Prometheus-formatted metrics.
    """
    metrics_collector = get_metrics()
    return Response(
        content=metrics_collector.get_metrics(),
        media_type=metrics_collector.get_content_type(),
    )
