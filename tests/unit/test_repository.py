"""
Unit tests for the job repository.
"""

from datetime import timedelta
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from docqueue.db.connection import create_session_factory
from docqueue.db.repository import JobRepository
from docqueue.utils import utcnow


class TestJobRepository:
    """Tests for JobRepository."""

    @pytest_asyncio.fixture
    async def db_session(self, async_engine):
        """Create a database session for tests."""
        async with create_session_factory(async_engine)() as session:
            yield session
            await session.rollback()

    @pytest_asyncio.fixture
    async def repo(self, queue, db_session: AsyncSession) -> JobRepository:
        """Create a repository instance on the test queue's table."""
        return JobRepository(db_session, queue.table)

    @pytest.mark.asyncio
    async def test_insert_job(self, repo: JobRepository, db_session: AsyncSession, make_payload):
        """Test job insertion with default state."""
        payload = await make_payload()

        job_id = await repo.insert_job(payload.id)
        await db_session.commit()

        job = await repo.get_job(job_id)
        assert job is not None
        assert job.payload == payload.id
        assert job.retries == 0
        assert job.done is False
        assert job.created_at == job.blocked_until

    @pytest.mark.asyncio
    async def test_get_job_not_found(self, repo: JobRepository):
        """Test getting a non-existent job."""
        assert await repo.get_job(uuid4()) is None

    @pytest.mark.asyncio
    async def test_claim_next(self, repo: JobRepository, db_session: AsyncSession, make_payload):
        """Test a successful claim."""
        payload = await make_payload()
        job_id = await repo.insert_job(payload.id)
        await db_session.commit()

        now = utcnow() + timedelta(seconds=1)
        blocked_until = now + timedelta(seconds=30)
        job = await repo.claim_next(
            worker_id="worker-1",
            worker_hostname="host-1",
            blocked_until=blocked_until,
            max_retries=5,
            now=now,
        )
        await db_session.commit()

        assert job is not None
        assert job.id == job_id
        assert job.worker_id == "worker-1"
        assert job.worker_hostname == "host-1"
        assert job.blocked_until == blocked_until
        assert job.retries == 1
        assert job.updated_at == now

    @pytest.mark.asyncio
    async def test_claim_next_respects_reference_time(
        self, repo: JobRepository, db_session: AsyncSession, make_payload
    ):
        """Test that a job is not claimable at its own blocked_until instant."""
        payload = await make_payload()
        job_id = await repo.insert_job(payload.id)
        await db_session.commit()
        job = await repo.get_job(job_id)

        claimed = await repo.claim_next(
            worker_id="worker-1",
            worker_hostname="host-1",
            blocked_until=job.blocked_until + timedelta(seconds=30),
            max_retries=5,
            now=job.blocked_until,
        )

        assert claimed is None

    @pytest.mark.asyncio
    async def test_claim_next_no_overlap(
        self, repo: JobRepository, db_session: AsyncSession, make_payload
    ):
        """Test that successive claims hand out different jobs."""
        payload = await make_payload()
        for _ in range(3):
            await repo.insert_job(payload.id)
        await db_session.commit()

        now = utcnow() + timedelta(seconds=1)
        claimed = []
        for worker_id in ("worker-1", "worker-2", "worker-3", "worker-4"):
            job = await repo.claim_next(
                worker_id=worker_id,
                worker_hostname="host",
                blocked_until=now + timedelta(seconds=30),
                max_retries=5,
                now=now,
            )
            await db_session.commit()
            claimed.append(job)

        assert claimed[3] is None
        assert len({job.id for job in claimed[:3]}) == 3

    @pytest.mark.asyncio
    async def test_mark_done(self, repo: JobRepository, db_session: AsyncSession, make_payload):
        """Test success and failure transitions."""
        payload = await make_payload()
        job_id = await repo.insert_job(payload.id)
        await db_session.commit()

        acked = await repo.mark_done(job_id)
        assert acked.done is True
        assert acked.error is None

        failed = await repo.mark_done(job_id, error="boom")
        await db_session.commit()
        assert failed.done is True
        assert failed.error == "boom"

    @pytest.mark.asyncio
    async def test_mark_done_unknown(self, repo: JobRepository):
        """Test that an unknown id is reported as None."""
        assert await repo.mark_done(uuid4()) is None

    @pytest.mark.asyncio
    async def test_delete_finished_count(
        self, repo: JobRepository, db_session: AsyncSession, make_payload
    ):
        """Test that delete_finished reports how many jobs it removed."""
        payload = await make_payload()
        kept = await repo.insert_job(payload.id)
        finished = [await repo.insert_job(payload.id) for _ in range(2)]
        for job_id in finished:
            await repo.mark_done(job_id)
        await db_session.commit()

        assert await repo.delete_finished(max_retries=5) == 2
        await db_session.commit()

        assert await repo.get_job(kept) is not None
        assert await repo.delete_all() == 1
        await db_session.commit()
        assert await repo.count_claimable(max_retries=5) == 0
