"""
Queue consumer loop.

A worker claims jobs with JobQueue.get(), hands each to an async handler and
finalizes it with ack() when the handler returns or error() when it raises.
Jobs it never finalizes (crash, shutdown mid-job, store outage) are picked
up again by any worker once their block elapses.
"""

import asyncio
import logging

from docqueue.config import get_settings
from docqueue.constants import SPAN_PROCESS_JOB, STATUS_ACKED, STATUS_ERRORED
from docqueue.exceptions import InvalidArgument
from docqueue.observability.logging import bind_context
from docqueue.observability.tracing import create_span
from docqueue.queue import JobQueue
from docqueue.types.job import ClaimedJob, JobResult
from docqueue.utils import install_stop_signals
from docqueue.worker.handlers import JobHandler, execute_job

logger = logging.getLogger(__name__)


class Worker:
    """
    Polls one queue and runs a handler for every claimed job.

    Up to ``batch_size`` jobs are claimed per poll and handled concurrently.
    The loop sleeps ``poll_interval`` seconds whenever a poll finds nothing.
    """

    def __init__(
        self,
        queue: JobQueue,
        handler: JobHandler,
        batch_size: int | None = None,
        poll_interval: float | None = None,
    ):
        settings = get_settings()

        self.queue = queue
        self.handler = handler
        self.batch_size = settings.worker_batch_size if batch_size is None else batch_size
        self.poll_interval = (
            settings.worker_poll_interval_seconds if poll_interval is None else poll_interval
        )
        if self.batch_size < 1:
            raise InvalidArgument(f"batch_size must be at least 1, got {self.batch_size}")
        if self.poll_interval < 0:
            raise InvalidArgument(f"poll_interval must not be negative, got {self.poll_interval}")

        self._stopping = asyncio.Event()

    @property
    def worker_id(self) -> str:
        return self.queue.worker_id

    async def start(self) -> None:
        """
        Poll until stop() is called.

        A poll hands out its whole batch before returning, so stopping never
        abandons a claimed job.
        """
        self._stopping.clear()
        logger.info(
            "Worker started",
            extra={
                "worker_id": self.worker_id,
                "queue": self.queue.name,
                "batch_size": self.batch_size,
            },
        )

        while not self._stopping.is_set():
            try:
                claimed = await self.run_once()
            except Exception:
                logger.exception(
                    "Worker poll failed",
                    extra={"worker_id": self.worker_id, "queue": self.queue.name},
                )
                claimed = 0

            if claimed == 0:
                await self._idle()

        logger.info("Worker stopped", extra={"worker_id": self.worker_id})

    async def stop(self) -> None:
        """Ask the loop to exit after the current poll."""
        logger.info("Worker stop requested", extra={"worker_id": self.worker_id})
        self._stopping.set()

    async def run_once(self) -> int:
        """
        Run a single poll: claim up to batch_size jobs and handle them.

        Returns:
            Number of jobs claimed.
        """
        jobs = await self._claim_batch()
        if not jobs:
            return 0

        logger.debug(
            "Claimed jobs",
            extra={"worker_id": self.worker_id, "queue": self.queue.name, "jobs": len(jobs)},
        )

        await asyncio.gather(
            *(self._process_job(job) for job in jobs),
            return_exceptions=True,
        )
        return len(jobs)

    async def _idle(self) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            pass

    async def _claim_batch(self) -> list[ClaimedJob]:
        """
        Claim up to batch_size jobs.

        A failing claim ends the batch early; jobs claimed before it are
        still returned so they get handled. If nothing was claimed the
        failure propagates to the poll loop.
        """
        jobs: list[ClaimedJob] = []
        while len(jobs) < self.batch_size:
            try:
                job = await self.queue.get()
            except Exception:
                if not jobs:
                    raise
                logger.exception(
                    "Claim failed mid-batch, handling jobs claimed so far",
                    extra={
                        "worker_id": self.worker_id,
                        "queue": self.queue.name,
                        "jobs": len(jobs),
                    },
                )
                break
            if job is None:
                break
            jobs.append(job)
        return jobs

    async def _process_job(self, job: ClaimedJob) -> None:
        with create_span(
            SPAN_PROCESS_JOB,
            job_id=job.id,
            queue=self.queue.name,
            retries=job.retries,
        ):
            result = await execute_job(self.handler, job)

        try:
            status = await self._finalize(job, result)
        except Exception:
            # Not finalized; claimable again once its block ends unless retries ran out
            last_attempt = job.is_last_attempt(self.queue.options.max_retries)
            logger.log(
                logging.ERROR if last_attempt else logging.WARNING,
                "Could not finalize job",
                exc_info=True,
                extra={
                    "job_id": str(job.id),
                    "worker_id": self.worker_id,
                    "retries": job.retries,
                    "will_be_reclaimed": not last_attempt,
                },
            )
            return

        self.queue.metrics.record_job_duration(
            self.queue.name, status, (result.duration_ms or 0.0) / 1000
        )

    async def _finalize(self, job: ClaimedJob, result: JobResult) -> str:
        """Ack or error the job from the handler outcome and return the status label."""
        if result.success:
            await self.queue.ack(job.id)
            logger.info(
                "Job acked",
                extra={"job_id": str(job.id), "duration_ms": result.duration_ms},
            )
            return STATUS_ACKED

        message = result.error or "Unknown error"
        await self.queue.error(job.id, message)
        logger.warning(
            "Job errored",
            extra={"job_id": str(job.id), "error": message, "retries": job.retries},
        )
        return STATUS_ERRORED


async def run_worker(
    queue: JobQueue,
    handler: JobHandler,
    batch_size: int | None = None,
    poll_interval: float | None = None,
) -> None:
    """
    Run a worker until SIGTERM or SIGINT.

    Args:
        queue: The queue to claim jobs from.
        handler: Coroutine function processing one claimed job.
        batch_size: Number of jobs to claim per poll.
        poll_interval: Seconds between polls when the queue is empty.
    """
    bind_context(worker_id=queue.worker_id, queue=queue.name)
    worker = Worker(queue, handler, batch_size=batch_size, poll_interval=poll_interval)
    install_stop_signals(worker.stop)
    await worker.start()
