"""
Job handler execution.

Handlers must be idempotent: delivery is at-least-once, so a handler may see
the same job again after a worker crash or an expired block.
"""

import logging
import time
from typing import Awaitable, Callable

from docqueue.types.job import ClaimedJob, JobResult

logger = logging.getLogger(__name__)

# A handler processes one claimed job; raising marks the job as errored
JobHandler = Callable[[ClaimedJob], Awaitable[None]]


async def execute_job(handler: JobHandler, job: ClaimedJob) -> JobResult:
    """
    Run a handler for a claimed job.

    Exceptions raised by the handler are turned into a failed result whose
    error is the exception message.

    Args:
        handler: The handler to run.
        job: The claimed job.

    Returns:
        JobResult describing the outcome.
    """
    start_time = time.monotonic()

    try:
        await handler(job)
    except Exception as e:
        logger.exception(
            "Handler raised exception",
            extra={"job_id": str(job.id), "retries": job.retries},
        )
        return JobResult(
            success=False,
            error=str(e) or type(e).__name__,
            duration_ms=(time.monotonic() - start_time) * 1000,
        )

    return JobResult(
        success=True,
        duration_ms=(time.monotonic() - start_time) * 1000,
    )
