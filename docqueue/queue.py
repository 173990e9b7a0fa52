"""
Queue engine.

JobQueue hands out jobs referencing externally owned payload records to any
number of workers sharing one database. Every instance is a stateless
facade: all coordination happens in the store, one statement per mutation.
"""

import logging
import socket
from typing import Any
from uuid import UUID

from sqlalchemy import MetaData, Table
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.orm import InstanceState

from docqueue.config import QueueOptions
from docqueue.constants import (
    DEFAULT_WORKER_ID,
    ERROR_JOB_NOT_FOUND,
    ERROR_PAYLOAD_INVALID,
    ERROR_PAYLOAD_MISSING,
    SPAN_ACK_JOB,
    SPAN_ADD_JOB,
    SPAN_CLEAN_QUEUE,
    SPAN_ERROR_JOB,
    SPAN_GET_JOB,
    SPAN_RESET_QUEUE,
    STATUS_ACKED,
    STATUS_ERRORED,
)
from docqueue.db.connection import create_session_factory, session_scope
from docqueue.db.models import JobRecord, create_job_table
from docqueue.db.repository import JobRepository
from docqueue.exceptions import InvalidArgument, NotFound
from docqueue.observability.metrics import MetricsCollector, get_metrics
from docqueue.observability.tracing import create_span
from docqueue.types.job import ClaimedJob, JobView
from docqueue.utils import milliseconds, utcnow

logger = logging.getLogger(__name__)


def _python_type(sql_type: Any) -> type | None:
    try:
        return sql_type.python_type
    except NotImplementedError:
        return None


class JobQueue:
    """
    Persistent multi-consumer queue on top of a SQLAlchemy database.

    Lifecycle of a job:
    - add() inserts it, immediately claimable
    - get() claims it: blocks it for block_duration and counts the claim
    - ack() / error() mark it done (error also records a message)
    - a claimed job that is never finished becomes claimable again once
      its block elapses, until it has been claimed more than max_retries times
    - clean() deletes finished and exhausted jobs, reset() deletes everything

    Example:
        queue = JobQueue(engine, Document, worker_id="indexer-1")
        await queue.create_schema()
        await queue.add(document)
        job = await queue.get()
        if job is not None:
            await queue.ack(job.id)
    """

    def __init__(
        self,
        engine: AsyncEngine,
        payload_model: type,
        worker_id: str = DEFAULT_WORKER_ID,
        options: QueueOptions | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the queue.

        Args:
            engine: Async engine of the shared database.
            payload_model: Mapped class of the payload records.
            worker_id: Identity recorded on claimed jobs.
            options: Queue options; defaults apply when omitted.
            metrics: Metrics collector; the process collector by default.

        Raises:
            InvalidArgument: If the payload model has no single-column
                primary key, or payload_ref_type does not match it.
        """
        self.options = options or QueueOptions()
        self.worker_id = worker_id
        self.worker_hostname = socket.gethostname()

        self._engine = engine
        self._session_factory = create_session_factory(engine)
        self._payload_model = payload_model
        self._payload_key = self._payload_primary_key(payload_model)
        self._metrics = metrics or get_metrics()

        self._metadata = MetaData()
        self._table = create_job_table(
            self._metadata,
            self.options.queue_collection,
            self._resolve_ref_type(),
        )

    @staticmethod
    def _payload_primary_key(payload_model: type) -> Any:
        mapper = sa_inspect(payload_model, raiseerr=False)
        if mapper is None or not hasattr(mapper, "primary_key"):
            raise InvalidArgument(
                f"{payload_model!r} is not a mapped payload model."
            )
        if len(mapper.primary_key) != 1:
            raise InvalidArgument(
                "Payload model must have a single-column primary key."
            )
        return mapper.primary_key[0]

    def _resolve_ref_type(self) -> Any:
        key_type = self._payload_key.type
        ref_type = self.options.payload_ref_type
        if ref_type is None:
            return key_type

        if isinstance(ref_type, type):
            ref_type = ref_type()
        expected = _python_type(key_type)
        actual = _python_type(ref_type)
        if expected is not None and actual is not None and expected is not actual:
            raise InvalidArgument(
                f"payload_ref_type {ref_type!r} does not match the payload "
                f"primary key type {key_type!r}."
            )
        return ref_type

    @property
    def name(self) -> str:
        """Name of the queue collection."""
        return self._table.name

    @property
    def metrics(self) -> MetricsCollector:
        """Metrics collector this queue reports to."""
        return self._metrics

    @property
    def table(self) -> Table:
        """The job table owned by this queue."""
        return self._table

    async def create_schema(self) -> None:
        """Create the job table if it does not exist."""
        async with self._engine.begin() as conn:
            await conn.run_sync(self._metadata.create_all)
        logger.info("Queue schema ready", extra={"queue": self.name})

    async def drop_schema(self) -> None:
        """Drop the job table and every job in it."""
        async with self._engine.begin() as conn:
            await conn.run_sync(self._metadata.drop_all)
        logger.warning("Queue schema dropped", extra={"queue": self.name})

    def _payload_reference(self, payload: Any) -> Any:
        if payload is None:
            raise InvalidArgument(ERROR_PAYLOAD_MISSING)

        state = sa_inspect(payload, raiseerr=False)
        if (
            not isinstance(state, InstanceState)
            or not isinstance(payload, self._payload_model)
            or state.identity is None
        ):
            raise InvalidArgument(ERROR_PAYLOAD_INVALID)
        return state.identity[0]

    async def add(self, payload: Any) -> UUID:
        """
        Add a job for a payload record.

        Args:
            payload: Persisted instance of the payload model.

        Returns:
            The id of the new job.

        Raises:
            InvalidArgument: If the payload is missing or not a persisted
                payload record.
        """
        payload_ref = self._payload_reference(payload)

        with create_span(SPAN_ADD_JOB, queue=self.name):
            async with session_scope(self._session_factory) as session:
                job_id = await JobRepository(session, self._table).insert_job(
                    payload_ref
                )

        self._metrics.record_job_added(self.name)
        return job_id

    async def get(self) -> ClaimedJob | None:
        """
        Claim the oldest claimable job.

        Returns None when no job is claimable; that is the normal "no work"
        outcome, not a failure.

        Returns:
            The claimed job with its payload record resolved, or None.
        """
        now = utcnow()
        blocked_until = now + milliseconds(self.options.block_duration)

        with create_span(SPAN_GET_JOB, queue=self.name, worker_id=self.worker_id):
            async with session_scope(self._session_factory) as session:
                job = await JobRepository(session, self._table).claim_next(
                    worker_id=self.worker_id,
                    worker_hostname=self.worker_hostname,
                    blocked_until=blocked_until,
                    max_retries=self.options.max_retries,
                    now=now,
                )
                if job is None:
                    return None

                payload = await session.get(self._payload_model, job.payload)

        self._metrics.record_job_claimed(self.name, self.worker_id)
        return ClaimedJob(
            id=job.id,
            payload=payload,
            blocked_until=job.blocked_until,
            done=job.done,
            retries=job.retries,
        )

    async def ack(self, job_id: UUID | str) -> JobView:
        """
        Mark a job as successfully done.

        Acking a job twice is allowed and leaves it done.

        Args:
            job_id: Id of the job.

        Returns:
            The updated job.

        Raises:
            NotFound: If no job has this id.
        """
        with create_span(SPAN_ACK_JOB, queue=self.name, job_id=job_id):
            job = await self._mark_done(job_id)

        self._metrics.record_job_finished(self.name, STATUS_ACKED)
        return JobView(
            id=job.id,
            payload=job.payload,
            blocked_until=job.blocked_until,
            done=job.done,
        )

    async def error(self, job_id: UUID | str, message: str) -> JobView:
        """
        Mark a job as done with an error message.

        A later error() overwrites the message.

        Args:
            job_id: Id of the job.
            message: Description of the failure.

        Returns:
            The updated job, including the error message.

        Raises:
            NotFound: If no job has this id.
        """
        with create_span(SPAN_ERROR_JOB, queue=self.name, job_id=job_id):
            job = await self._mark_done(job_id, error=message)

        self._metrics.record_job_finished(self.name, STATUS_ERRORED)
        return JobView(
            id=job.id,
            payload=job.payload,
            blocked_until=job.blocked_until,
            done=job.done,
            error=job.error,
        )

    async def _mark_done(
        self,
        job_id: UUID | str,
        error: str | None = None,
    ) -> JobRecord:
        parsed = _parse_job_id(job_id)
        if parsed is None:
            raise NotFound(ERROR_JOB_NOT_FOUND)

        async with session_scope(self._session_factory) as session:
            job = await JobRepository(session, self._table).mark_done(
                parsed, error=error
            )

        if job is None:
            raise NotFound(ERROR_JOB_NOT_FOUND)
        return job

    async def clean(self) -> None:
        """Delete all jobs that are done or have exhausted their retries."""
        with create_span(SPAN_CLEAN_QUEUE, queue=self.name):
            async with session_scope(self._session_factory) as session:
                count = await JobRepository(session, self._table).delete_finished(
                    self.options.max_retries
                )

        self._metrics.record_jobs_cleaned(self.name, count)

    async def reset(self) -> None:
        """Delete ALL jobs of this queue, whatever their state."""
        with create_span(SPAN_RESET_QUEUE, queue=self.name):
            async with session_scope(self._session_factory) as session:
                await JobRepository(session, self._table).delete_all()

    async def lookup(self, job_id: UUID | str) -> JobRecord | None:
        """
        Read a job without changing it.

        Args:
            job_id: Id of the job.

        Returns:
            The stored job, or None if the id is unknown or malformed.
        """
        parsed = _parse_job_id(job_id)
        if parsed is None:
            return None

        async with session_scope(self._session_factory) as session:
            return await JobRepository(session, self._table).get_job(parsed)

    async def depth(self) -> int:
        """
        Count the jobs get() could hand out right now.

        The count is also published as the queue depth gauge.
        """
        async with session_scope(self._session_factory) as session:
            count = await JobRepository(session, self._table).count_claimable(
                self.options.max_retries
            )

        self._metrics.update_queue_depth(self.name, count)
        return count

    def __repr__(self) -> str:
        return (
            f"JobQueue(name={self.name!r}, worker_id={self.worker_id!r}, "
            f"max_retries={self.options.max_retries}, "
            f"block_duration={self.options.block_duration})"
        )


def _parse_job_id(job_id: UUID | str) -> UUID | None:
    if isinstance(job_id, UUID):
        return job_id
    try:
        return UUID(str(job_id))
    except ValueError:
        return None
