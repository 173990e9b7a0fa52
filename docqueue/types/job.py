"""
Job-related type definitions returned to queue callers.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel


@dataclass(frozen=True)
class ClaimedJob:
    """
    A job handed out by JobQueue.get().

    The payload is the resolved payload record, or None if the referenced
    record no longer exists.
    """

    id: UUID
    payload: Any
    blocked_until: datetime
    done: bool
    retries: int

    def is_last_attempt(self, max_retries: int) -> bool:
        """Check if no further claim will be granted for this job."""
        return self.retries > max_retries


@dataclass(frozen=True)
class JobView:
    """
    A job after a terminal transition (ack or error).

    The payload is the stored reference, not the resolved record.
    error is only filled in by the error transition.
    """

    id: UUID
    payload: Any
    blocked_until: datetime
    done: bool
    error: str | None = None


class JobResult(BaseModel):
    """
    Result of processing one claimed job.
    Produced by the worker around each handler call.
    """

    success: bool
    error: str | None = None
    duration_ms: float | None = None
