"""
FastAPI application entry point.
"""

import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from jobqueue import __version__
from jobqueue.api.routes import health_router, jobs_router, workers_router
from jobqueue.config import get_settings
from jobqueue.errors import StoreUnavailableError
from jobqueue.observability.logging import setup_logging
from jobqueue.observability.metrics import get_metrics, setup_metrics
from jobqueue.observability.tracing import instrument_fastapi, setup_tracing
from jobqueue.store import close_store, init_store
from jobqueue.store.base import Store
from jobqueue.types.api import ErrorResponse

logger = logging.getLogger(__name__)


async def record_request_metrics(request: Request, call_next):
    """Record count and latency of every request by route template."""
    start = time.perf_counter()
    response = await call_next(request)

    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    get_metrics().record_api_request(
        method=request.method,
        endpoint=endpoint,
        status=response.status_code,
        duration_seconds=time.perf_counter() - start,
    )
    return response


async def store_unavailable_handler(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    logger.error(
        "Store unavailable while serving request",
        extra={"path": request.url.path, "operation": exc.operation},
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=ErrorResponse(error="store_unavailable", detail=str(exc)).model_dump(),
    )


def create_app(store: Store | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        store: Pre-built store installed on startup instead of the
            configured backend.

    Returns:
        FastAPI: The configured application instance.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Handles startup and shutdown events.
        """
        # Startup
        setup_logging(process="api")
        setup_metrics()
        setup_tracing()
        await init_store(store=store)

        logger.info("Application started")

        yield

        # Shutdown
        await close_store()
        logger.info("Application shutdown")

    app = FastAPI(
        title="Job Queue API",
        description="Distributed job queue with priority lanes, dependencies and retries",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(BaseHTTPMiddleware, dispatch=record_request_metrics)

    app.add_exception_handler(StoreUnavailableError, store_unavailable_handler)

    # Include routers
    app.include_router(health_router)
    app.include_router(jobs_router)
    app.include_router(workers_router)

    # Instrument with OpenTelemetry
    instrument_fastapi(app)

    return app


def run() -> None:
    """Run the API server."""
    settings = get_settings()
    app = create_app()

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
