"""
Job management routes.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from jobqueue.config import get_settings
from jobqueue.errors import InvalidJobOperationError, JobNotFoundError
from jobqueue.queue.service import JobService
from jobqueue.store import get_store
from jobqueue.types.api import (
    JobIdsResponse,
    JobListResponse,
    JobResultResponse,
    JobStatsResponse,
    JobStatusResponse,
    MessageResponse,
    SubmitJobRequest,
    SubmitJobResponse,
)
from jobqueue.types.job import Job

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])


def get_job_service() -> JobService:
    """Build a job service over the process-wide store."""
    return JobService(get_store(), get_settings())


def _job_to_response(job: Job) -> JobStatusResponse:
    """Convert a Job snapshot to a JobStatusResponse."""
    return JobStatusResponse(
        id=job.id,
        type=job.type,
        status=job.status,
        priority=job.priority,
        progress=job.progress,
        retries=job.retries,
        created_at=job.created_at,
        updated_at=job.updated_at,
        last_error=job.last_error,
        worker_id=job.worker_id,
    )


def _not_found(error: JobNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))


@router.post(
    "",
    response_model=SubmitJobResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a job",
    description="Submit a job to its priority lane, or park it until its dependencies complete.",
)
async def submit_job(
    request: SubmitJobRequest,
    service: JobService = Depends(get_job_service),
) -> SubmitJobResponse:
    """
    Submit a new job.

    Args:
        request: Job submission request.
        service: Job service.

    Returns:
        SubmitJobResponse with the new job id.

    Raises:
        HTTPException: If a dependency is duplicated, unknown or can no
            longer complete.
    """
    try:
        job_id = await service.submit(
            request.type,
            request.data,
            request.priority,
            request.dependencies,
        )
    except InvalidJobOperationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.reason)

    return SubmitJobResponse(job_id=job_id)


@router.get(
    "",
    response_model=JobListResponse,
    summary="List jobs",
    description="List every known job, oldest first.",
)
async def list_jobs(service: JobService = Depends(get_job_service)) -> JobListResponse:
    jobs = await service.list_jobs()
    return JobListResponse(jobs=[_job_to_response(job) for job in jobs], total=len(jobs))


@router.get(
    "/ids",
    response_model=JobIdsResponse,
    summary="List job ids",
)
async def list_job_ids(service: JobService = Depends(get_job_service)) -> JobIdsResponse:
    return JobIdsResponse(job_ids=await service.list_job_ids())


@router.get(
    "/stats",
    response_model=JobStatsResponse,
    summary="Get job statistics",
    description="Job counts by status, lane depths and dead-letter size.",
)
async def get_job_stats(service: JobService = Depends(get_job_service)) -> JobStatsResponse:
    """
    Get job statistics.

    Args:
        service: Job service.

    Returns:
        JobStatsResponse with counts for every status.
    """
    stats = await service.stats()
    overview = await service.queue_overview()
    return JobStatsResponse(stats=stats, **overview)


@router.get(
    "/{job_id}/status",
    response_model=JobStatusResponse,
    summary="Get job status",
)
async def get_job_status(
    job_id: str,
    service: JobService = Depends(get_job_service),
) -> JobStatusResponse:
    """
    Get job status and progress.

    Args:
        job_id: The job id.
        service: Job service.

    Returns:
        JobStatusResponse with the current state.

    Raises:
        HTTPException: If the job is not found.
    """
    try:
        job = await service.get_job(job_id)
    except JobNotFoundError as e:
        raise _not_found(e)
    return _job_to_response(job)


@router.get(
    "/{job_id}/result",
    response_model=JobResultResponse,
    summary="Get job result",
)
async def get_job_result(
    job_id: str,
    service: JobService = Depends(get_job_service),
) -> JobResultResponse:
    try:
        job = await service.get_job(job_id)
    except JobNotFoundError as e:
        raise _not_found(e)
    return JobResultResponse(id=job.id, status=job.status, result=job.result)


@router.post(
    "/{job_id}/cancel",
    response_model=JobStatusResponse,
    summary="Cancel a job",
    description="Cancel a PENDING or PROCESSING job. Running jobs stop at their next progress step.",
)
async def cancel_job(
    job_id: str,
    service: JobService = Depends(get_job_service),
) -> JobStatusResponse:
    """
    Cancel a job.

    Args:
        job_id: The job id.
        service: Job service.

    Returns:
        JobStatusResponse with the cancelled job.

    Raises:
        HTTPException: If the job is not found or already finished.
    """
    try:
        job = await service.cancel(job_id)
    except JobNotFoundError as e:
        raise _not_found(e)
    except InvalidJobOperationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.reason)
    return _job_to_response(job)


@router.delete(
    "/{job_id}",
    response_model=MessageResponse,
    summary="Delete a job",
)
async def delete_job(
    job_id: str,
    service: JobService = Depends(get_job_service),
) -> MessageResponse:
    try:
        await service.delete(job_id)
    except JobNotFoundError as e:
        raise _not_found(e)
    return MessageResponse(message="Job deleted successfully")
