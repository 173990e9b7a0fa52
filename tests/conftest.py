"""
Pytest configuration and shared fixtures.
"""

import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from prometheus_client import CollectorRegistry
from sqlalchemy import Integer, String, insert
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from docqueue.config import QueueOptions
from docqueue.db.connection import get_test_engine
from docqueue.observability.metrics import MetricsCollector
from docqueue.queue import JobQueue
from docqueue.utils import utcnow

# Test database URL - PostgreSQL in CI, a temporary SQLite file otherwise
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


class PayloadBase(DeclarativeBase):
    """Declarative base of the payload records used in tests."""

    pass


class Payload(PayloadBase):
    """Externally owned record referenced by queued jobs."""

    __tablename__ = "payload"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first: Mapped[str] = mapped_column(String(255), nullable=False)
    second: Mapped[str] = mapped_column(String(255), nullable=False)


@pytest.fixture(scope="session")
def database_url(tmp_path_factory: pytest.TempPathFactory) -> str:
    """Get the test database URL."""
    if TEST_DATABASE_URL:
        return TEST_DATABASE_URL
    db_file = tmp_path_factory.mktemp("db") / "docqueue_test.db"
    return f"sqlite+aiosqlite:///{db_file}"


@pytest_asyncio.fixture
async def async_engine(database_url: str) -> AsyncGenerator[AsyncEngine]:
    """Create an async database engine with the payload table in place."""
    engine = get_test_engine(database_url)

    async with engine.begin() as conn:
        await conn.run_sync(PayloadBase.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def payload_model() -> type[Payload]:
    """The payload record kind queues are built for."""
    return Payload


@pytest.fixture
def metrics_registry() -> CollectorRegistry:
    """Private Prometheus registry for one test."""
    return CollectorRegistry()


@pytest.fixture
def metrics(metrics_registry: CollectorRegistry) -> MetricsCollector:
    """Metrics collector on the private registry."""
    return MetricsCollector(metrics_registry)


@pytest_asyncio.fixture
async def make_queue(
    async_engine: AsyncEngine,
    metrics: MetricsCollector,
) -> AsyncGenerator[Callable[..., Awaitable[JobQueue]]]:
    """
    Factory for queues on an isolated, freshly created job table.

    Queues built with the same ``queue_collection`` share one table, like
    workers on different hosts do.
    """
    created: dict[str, JobQueue] = {}
    default_collection = f"queue_{uuid4().hex[:12]}"

    async def factory(worker_id: str = "test-worker", **options: Any) -> JobQueue:
        options.setdefault("queue_collection", default_collection)
        queue = JobQueue(
            async_engine,
            Payload,
            worker_id=worker_id,
            options=QueueOptions(**options),
            metrics=metrics,
        )
        if queue.name not in created:
            await queue.create_schema()
            created[queue.name] = queue
        return queue

    yield factory

    for queue in created.values():
        await queue.drop_schema()


@pytest_asyncio.fixture
async def queue(make_queue: Callable[..., Awaitable[JobQueue]]) -> JobQueue:
    """Create a queue with default options."""
    return await make_queue()


@pytest_asyncio.fixture
async def make_payload(
    async_engine: AsyncEngine,
) -> Callable[..., Awaitable[Payload]]:
    """Factory persisting payload records."""
    session_factory = async_sessionmaker(bind=async_engine, expire_on_commit=False)

    async def factory(first: str = "First element", second: str = "Second element") -> Payload:
        async with session_factory() as session:
            payload = Payload(first=first, second=second)
            session.add(payload)
            await session.commit()
            return payload

    return factory


@pytest_asyncio.fixture
async def insert_job(
    async_engine: AsyncEngine,
) -> Callable[..., Awaitable[UUID]]:
    """
    Insert a job row directly, bypassing the queue.

    Used to set up states the queue only reaches over time (exhausted
    retries, elapsed or future blocks, done flags).
    """

    async def factory(queue: JobQueue, payload: Payload, **values: Any) -> UUID:
        now = utcnow()
        row: dict[str, Any] = {
            "id": uuid4(),
            "payload": payload.id,
            "blocked_until": now,
            "retries": 0,
            "done": False,
            "created_at": now,
            "updated_at": now,
        }
        row.update(values)
        async with async_engine.begin() as conn:
            await conn.execute(insert(queue.table).values(**row))
        return row["id"]

    return factory
