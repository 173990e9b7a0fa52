"""
Database module.
Contains database connection, table definitions, and the job repository.
"""

from docqueue.db.connection import (
    close_db,
    create_session_factory,
    get_engine,
    get_test_engine,
    session_scope,
)
from docqueue.db.models import JobRecord, create_job_table
from docqueue.db.repository import JobRepository

__all__ = [
    "get_engine",
    "get_test_engine",
    "create_session_factory",
    "session_scope",
    "close_db",
    "JobRecord",
    "create_job_table",
    "JobRepository",
]
