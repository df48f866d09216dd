"""
Worker health routes.
"""

from fastapi import APIRouter, Depends

from jobqueue.api.routes.jobs import get_job_service
from jobqueue.queue.service import JobService
from jobqueue.types.api import WorkerHealthResponse

router = APIRouter(prefix="/workers", tags=["Workers"])


@router.get(
    "/health",
    response_model=list[WorkerHealthResponse],
    summary="Worker liveness",
    description="Workers seen recently, ALIVE while their heartbeat is fresh.",
)
async def worker_health(
    service: JobService = Depends(get_job_service),
) -> list[WorkerHealthResponse]:
    workers = await service.worker_health()
    return [
        WorkerHealthResponse(
            worker_id=worker.worker_id,
            queue=worker.queue,
            status=worker.status,
            last_seen=worker.last_seen,
        )
        for worker in workers
    ]
