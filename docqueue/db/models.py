"""
SQLAlchemy table definitions.
Defines the per-queue job table and the job record read from it.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)
from sqlalchemy.engine import Row
from sqlalchemy.types import Uuid

from docqueue.utils import utcnow


def create_job_table(
    metadata: MetaData,
    name: str,
    payload_ref_type: Any,
) -> Table:
    """
    Build the job table for one queue.

    Every queue owns its table, registered in the metadata of the queue
    that created it. Timestamps are naive UTC.

    Key constraints:
    - payload holds the primary key of an external record and is never null
    - retries counts successful claims and only ever grows
    - done is the terminal flag, set by ack and by error

    Args:
        metadata: Metadata the table is registered in.
        name: Table name (the queue collection).
        payload_ref_type: Column type of the payload reference.

    Returns:
        Table: The job table.
    """
    return Table(
        name,
        metadata,
        # Primary key
        Column("id", Uuid(as_uuid=True), primary_key=True, default=uuid4),
        # Reference to the payload record
        Column("payload", payload_ref_type, nullable=False),
        # Claim state
        Column("blocked_until", DateTime(), nullable=False, default=utcnow),
        Column("worker_id", String(255), nullable=True),
        Column("worker_hostname", String(255), nullable=True),
        Column("retries", Integer, nullable=False, default=0),
        # Terminal state
        Column("done", Boolean, nullable=False, default=False),
        Column("error", Text, nullable=True),
        # Timestamps
        Column("created_at", DateTime(), nullable=False, default=utcnow),
        Column(
            "updated_at",
            DateTime(),
            nullable=False,
            default=utcnow,
            onupdate=utcnow,
        ),
        # Index for efficient claim polling
        Index(f"ix_{name}_claim_poll", "done", "blocked_until", "created_at"),
    )


@dataclass(frozen=True)
class JobRecord:
    """
    A job row as stored in the queue table.

    A job is claimable iff it is not done, its block has elapsed and it has
    not been claimed more than max_retries times.
    """

    id: UUID
    payload: Any
    blocked_until: datetime
    worker_id: str | None
    worker_hostname: str | None
    retries: int
    done: bool
    error: str | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: Row) -> "JobRecord":
        """Build a record from a table row."""
        return cls(
            id=row.id,
            payload=row.payload,
            blocked_until=row.blocked_until,
            worker_id=row.worker_id,
            worker_hostname=row.worker_hostname,
            retries=row.retries,
            done=row.done,
            error=row.error,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def is_blocked(self, now: datetime | None = None) -> bool:
        """Check if the job is still inside its blocking window."""
        return self.blocked_until >= (now or utcnow())

    def is_exhausted(self, max_retries: int) -> bool:
        """Check if the job has used up its claims."""
        return self.retries > max_retries

    def is_claimable(self, max_retries: int, now: datetime | None = None) -> bool:
        """Check if get() may hand out this job."""
        return (
            not self.done
            and not self.is_blocked(now)
            and not self.is_exhausted(max_retries)
        )

    def __repr__(self) -> str:
        return (
            f"JobRecord(id={self.id}, payload={self.payload!r}, "
            f"retries={self.retries}, done={self.done})"
        )
