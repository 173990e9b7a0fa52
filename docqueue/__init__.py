"""
docqueue

A persistent multi-consumer work queue on a shared SQLAlchemy database.
Producers enqueue references to payload records; workers atomically claim,
process and finalize them with at-least-once delivery.
"""

__version__ = "1.0.0"

from docqueue.config import QueueOptions, Settings, get_settings
from docqueue.exceptions import InvalidArgument, NotFound, QueueError, StoreFailure
from docqueue.queue import JobQueue
from docqueue.types import ClaimedJob, JobView

__all__ = [
    "JobQueue",
    "QueueOptions",
    "Settings",
    "get_settings",
    "ClaimedJob",
    "JobView",
    "QueueError",
    "InvalidArgument",
    "NotFound",
    "StoreFailure",
]
