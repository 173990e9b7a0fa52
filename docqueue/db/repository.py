"""
Job repository for database operations.
Implements the store primitives the queue is built on.
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    Table,
    and_,
    delete,
    false,
    func,
    insert,
    or_,
    select,
    true,
    update,
)
from sqlalchemy.ext.asyncio import AsyncSession

from docqueue.db.models import JobRecord
from docqueue.utils import utcnow

logger = logging.getLogger(__name__)


class JobRepository:
    """
    Repository for job database operations on one queue table.

    Every method issues exactly one statement. Implements:
    - Job insertion
    - Atomic claim with FOR UPDATE SKIP LOCKED
    - Terminal transitions by id
    - Filtered and unconditional deletes
    """

    def __init__(self, session: AsyncSession, table: Table):
        """
        Initialize the repository.

        Args:
            session: The async database session.
            table: The queue's job table.
        """
        self._session = session
        self._table = table

    def _claimable(self, max_retries: int, now: datetime) -> Any:
        t = self._table
        return and_(
            t.c.done == false(),
            t.c.blocked_until < now,
            t.c.retries <= max_retries,
        )

    async def insert_job(self, payload_ref: Any) -> UUID:
        """
        Insert a new job referencing a payload record.

        Args:
            payload_ref: Primary key of the payload record.

        Returns:
            The new job id.
        """
        now = utcnow()
        job_id = uuid4()
        stmt = insert(self._table).values(
            id=job_id,
            payload=payload_ref,
            blocked_until=now,
            retries=0,
            done=False,
            created_at=now,
            updated_at=now,
        )
        await self._session.execute(stmt)

        logger.info(
            "Inserted job",
            extra={"job_id": str(job_id), "queue": self._table.name},
        )
        return job_id

    async def claim_next(
        self,
        worker_id: str,
        worker_hostname: str,
        blocked_until: datetime,
        max_retries: int,
        now: datetime | None = None,
    ) -> JobRecord | None:
        """
        Claim the oldest claimable job.

        The sub-select picks the candidate and the outer UPDATE blocks it in
        the same statement, so concurrent callers never receive the same job.
        Row locks are skipped rather than waited on where the dialect has
        them (PostgreSQL); dialects without row locks (SQLite) serialize the
        statement on the database write lock.

        Args:
            worker_id: Identity of the claiming worker.
            worker_hostname: Host of the claiming worker.
            blocked_until: New end of the blocking window.
            max_retries: Claim count bound.
            now: Reference time for the claimable filter.

        Returns:
            The claimed job after the update, or None if nothing was claimable.
        """
        t = self._table
        now = now or utcnow()

        candidate = (
            select(t.c.id)
            .where(self._claimable(max_retries, now))
            .order_by(t.c.created_at.asc(), t.c.id.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
        )

        stmt = (
            update(t)
            .where(t.c.id.in_(candidate))
            .values(
                blocked_until=blocked_until,
                worker_id=worker_id,
                worker_hostname=worker_hostname,
                retries=t.c.retries + 1,
                updated_at=now,
            )
            .returning(*t.c)
        )

        result = await self._session.execute(stmt)
        row = result.first()
        if row is None:
            return None

        job = JobRecord.from_row(row)
        logger.info(
            "Claimed job",
            extra={
                "job_id": str(job.id),
                "queue": t.name,
                "worker_id": worker_id,
                "retries": job.retries,
            },
        )
        return job

    async def mark_done(
        self,
        job_id: UUID,
        error: str | None = None,
    ) -> JobRecord | None:
        """
        Set the terminal flag of a job, with an error message if given.

        Args:
            job_id: The job UUID.
            error: Failure message; None marks a success.

        Returns:
            Updated job or None if the id is unknown.
        """
        t = self._table
        values: dict[str, Any] = {"done": True, "updated_at": utcnow()}
        if error is not None:
            values["error"] = error

        stmt = (
            update(t)
            .where(t.c.id == job_id)
            .values(**values)
            .returning(*t.c)
        )

        result = await self._session.execute(stmt)
        row = result.first()
        if row is None:
            return None

        logger.info(
            "Job marked done",
            extra={
                "job_id": str(job_id),
                "queue": t.name,
                "failed": error is not None,
            },
        )
        return JobRecord.from_row(row)

    async def get_job(self, job_id: UUID) -> JobRecord | None:
        """
        Get a job by ID.

        Args:
            job_id: The job UUID.

        Returns:
            The job or None if not found.
        """
        stmt = select(self._table).where(self._table.c.id == job_id)
        result = await self._session.execute(stmt)
        row = result.first()
        return JobRecord.from_row(row) if row is not None else None

    async def count_claimable(self, max_retries: int) -> int:
        """
        Count jobs get() could hand out right now.

        Args:
            max_retries: Claim count bound.

        Returns:
            Number of claimable jobs.
        """
        stmt = (
            select(func.count())
            .select_from(self._table)
            .where(self._claimable(max_retries, utcnow()))
        )
        result = await self._session.execute(stmt)
        return result.scalar() or 0

    async def delete_finished(self, max_retries: int) -> int:
        """
        Delete jobs that are done or have exhausted their claims.

        Args:
            max_retries: Claim count bound.

        Returns:
            Number of deleted jobs.
        """
        t = self._table
        stmt = delete(t).where(
            or_(
                t.c.done == true(),
                t.c.retries > max_retries,
            )
        )
        result = await self._session.execute(stmt)
        count = result.rowcount

        if count > 0:
            logger.info(
                f"Deleted {count} finished jobs",
                extra={"queue": t.name},
            )
        return count

    async def delete_all(self) -> int:
        """
        Delete every job in the table.

        Returns:
            Number of deleted jobs.
        """
        result = await self._session.execute(delete(self._table))
        count = result.rowcount

        logger.warning(
            f"Deleted all {count} jobs",
            extra={"queue": self._table.name},
        )
        return count
