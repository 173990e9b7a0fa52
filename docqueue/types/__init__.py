"""
Type definitions for the queue.
Contains the result types returned by queue operations.
"""

from docqueue.types.job import ClaimedJob, JobResult, JobView

__all__ = [
    "ClaimedJob",
    "JobView",
    "JobResult",
]
