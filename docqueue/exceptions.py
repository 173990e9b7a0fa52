"""
Queue error taxonomy.

Domain errors derive from QueueError. Store errors are never wrapped:
whatever SQLAlchemy raises reaches the caller unchanged, and StoreFailure
is simply the name callers catch for it.
"""

from sqlalchemy.exc import SQLAlchemyError


class QueueError(Exception):
    """Base class for domain errors raised by the queue."""


class InvalidArgument(QueueError):
    """Raised for a missing or malformed argument (payload, options)."""


class NotFound(QueueError):
    """Raised when a job id does not match any job in the queue."""


StoreFailure = SQLAlchemyError

__all__ = ["QueueError", "InvalidArgument", "NotFound", "StoreFailure"]
