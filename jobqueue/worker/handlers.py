"""
Job handlers registry and implementations.

Handlers report progress through context.checkpoint(), which stops the
handler with JobCancelledError once the job is cancelled. Handlers may
run more than once for the same job when a failed attempt is retried.
"""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable

from jobqueue.constants import DEFAULT_JOB_TYPE
from jobqueue.errors import JobCancelledError, JobExecutionError
from jobqueue.types.job import JobContext, JobResult

logger = logging.getLogger(__name__)

# Type alias for job handler functions
JobHandler = Callable[[JobContext], Awaitable[JobResult]]

# Handler registry
_handlers: dict[str, JobHandler] = {}


def register_handler(job_type: str) -> Callable[[JobHandler], JobHandler]:
    """
    Decorator to register a job handler.

    Args:
        job_type: The job type this handler processes.

    Returns:
        Decorator function.

    Example:
        @register_handler("send_email")
        async def handle_send_email(context: JobContext) -> JobResult:
            ...
    """
    def decorator(handler: JobHandler) -> JobHandler:
        _handlers[job_type] = handler
        logger.debug(f"Registered handler for job type: {job_type}")
        return handler
    return decorator


def get_handler(job_type: str) -> JobHandler | None:
    """
    Get the handler for a job type.

    Args:
        job_type: The job type.

    Returns:
        The handler function or None if not found.
    """
    return _handlers.get(job_type)


def list_handlers() -> list[str]:
    """List all registered job types."""
    return list(_handlers.keys())


def _data(context: JobContext) -> dict[str, Any]:
    return context.payload if isinstance(context.payload, dict) else {}


# ============================================================================
# Built-in job handlers
# ============================================================================


@register_handler(DEFAULT_JOB_TYPE)
async def handle_simulate(context: JobContext) -> JobResult:
    """
    Simulated work in fixed progress increments.

    Progress goes 0, step, 2*step ... 100 with a fixed pause per step.
    Used for every job type without a dedicated handler.
    """
    for progress in range(0, 101, context.progress_step):
        await context.checkpoint(progress)
        await asyncio.sleep(context.step_delay_seconds)

    return JobResult(
        success=True,
        output=f"Success Result of Job {context.job_id}",
    )


@register_handler("echo")
async def handle_echo(context: JobContext) -> JobResult:
    """
    Echo handler for testing.

    Simply returns the input payload as output.
    """
    await context.checkpoint(100)
    return JobResult(
        success=True,
        output={"echo": context.payload},
    )


@register_handler("sleep")
async def handle_sleep(context: JobContext) -> JobResult:
    """
    Sleep handler for testing delays.

    Payload should contain:
    - duration_seconds: How long to sleep
    """
    duration = _data(context).get("duration_seconds", 1)
    await context.checkpoint(0)
    await asyncio.sleep(duration)
    await context.checkpoint(100)

    return JobResult(
        success=True,
        output={"slept_for": duration},
    )


@register_handler("failing_job")
async def handle_failing_job(context: JobContext) -> JobResult:
    """
    Handler that always fails - for testing retry logic.
    """
    await context.checkpoint(0)
    raise JobExecutionError(f"Intentional failure on attempt {context.attempt}")


@register_handler("random_failure")
async def handle_random_failure(context: JobContext) -> JobResult:
    """
    Handler that randomly fails - for testing retry behavior.

    Payload should contain:
    - failure_rate: Probability of failure (0.0 to 1.0)
    """
    failure_rate = _data(context).get("failure_rate", 0.5)
    await context.checkpoint(0)

    if random.random() < failure_rate:
        return JobResult(
            success=False,
            error=f"Random failure on attempt {context.attempt}",
        )

    await context.checkpoint(100)
    return JobResult(
        success=True,
        output={"message": "Succeeded this time!"},
    )


@register_handler("http_request")
async def handle_http_request(context: JobContext) -> JobResult:
    """
    Make an HTTP request.

    Payload should contain:
    - url: The URL to request
    - method: HTTP method (GET, POST, etc.)
    - headers: Optional headers
    - body: Optional request body
    """
    import httpx

    data = _data(context)
    url = data.get("url")
    method = data.get("method", "GET").upper()
    headers = data.get("headers", {})
    body = data.get("body")

    if not url:
        return JobResult(
            success=False,
            error="Missing 'url' in payload",
        )

    await context.checkpoint(0)
    async with httpx.AsyncClient() as client:
        response = await client.request(
            method=method,
            url=url,
            headers=headers,
            json=body if method in ["POST", "PUT", "PATCH"] else None,
            timeout=30.0,
        )
    await context.checkpoint(100)

    return JobResult(
        success=response.is_success,
        output={
            "status_code": response.status_code,
            "body": response.text[:1000],  # Truncate response
        },
        error=None if response.is_success else f"HTTP {response.status_code}",
    )


async def execute_job(context: JobContext) -> JobResult:
    """
    Execute a job using the appropriate handler.

    Unknown job types run the simulated handler; the type tag is opaque.
    Cancellation propagates; any other handler exception becomes a
    failed result.

    Args:
        context: The job context.

    Returns:
        JobResult from the handler.

    Raises:
        JobCancelledError: If the job was cancelled at a checkpoint.
    """
    handler = get_handler(context.job_type) or _handlers[DEFAULT_JOB_TYPE]

    try:
        return await handler(context)
    except JobCancelledError:
        raise
    except Exception as e:
        logger.warning(
            "Handler raised exception",
            extra={"job_id": context.job_id, "error": str(e)},
        )
        return JobResult(
            success=False,
            error=f"Handler exception: {str(e)}",
        )
