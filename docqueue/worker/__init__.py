"""
Worker module.
Contains the polling worker and handler execution.
"""

from docqueue.worker.handlers import JobHandler, execute_job
from docqueue.worker.main import Worker, run_worker

__all__ = ["Worker", "run_worker", "JobHandler", "execute_job"]
