"""
Durable job store with conditional (compare-and-swap) status updates.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from postreader.errors import NotFound, StoreUnavailable
from postreader.models.job import Job, JobStatus

logger = logging.getLogger(__name__)


class JobStore:
    """
    Owns the job records.

    Every transition after creation is a conditional UPDATE keyed on the
    current status, so concurrent workers racing on the same job id see
    exactly one winner. Database errors surface as StoreUnavailable.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        if session_factory is None:
            from postreader.database import async_session_factory
            session_factory = async_session_factory
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self):
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error('Job store error: %s', e)
            raise StoreUnavailable(str(e)) from e

    async def create(self, text: str, voice: str) -> Job:
        """Insert a new PENDING job and return it."""
        now = datetime.utcnow()
        job = Job(
            text=text,
            voice=voice,
            status=JobStatus.pending.value,
            attempts=0,
            created_at=now,
            updated_at=now,
        )
        async with self._session() as session:
            session.add(job)
            await session.commit()
        return job

    async def get(self, job_id: str) -> Job:
        """Return the job with the given id or raise NotFound."""
        async with self._session() as session:
            job = await self._load(session, job_id)
        if job is None:
            raise NotFound(job_id)
        return job

    async def list(self, limit: Optional[int] = None) -> List[Job]:
        """Return jobs ordered by creation time (newest first)."""
        query = select(Job).order_by(Job.created_at.desc())
        if limit is not None:
            query = query.limit(limit)
        async with self._session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def find_stale(self, status: JobStatus, older_than: datetime) -> List[Job]:
        """Return jobs in `status` whose last update is before `older_than`."""
        query = (
            select(Job)
            .where(Job.status == status.value, Job.updated_at < older_than)
            .order_by(Job.updated_at)
        )
        async with self._session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def claim(self, job_id: str) -> Optional[Job]:
        """
        Move a job from PENDING to PROCESSING.

        Returns the claimed job, or None if the job is missing or was
        already claimed by someone else.
        """
        condition = (Job.id == job_id) & (Job.status == JobStatus.pending.value)
        return await self._transition(
            job_id,
            condition,
            status=JobStatus.processing.value,
            attempts=Job.attempts + 1,
        )

    async def reclaim(self, job_id: str, observed_updated_at: datetime) -> Optional[Job]:
        """
        Take over a PROCESSING job that appears abandoned.

        The update only applies if `updated_at` still equals the value the
        caller observed, so two sweeps cannot both reclaim the same job.
        The job stays PROCESSING; its attempt counter is incremented.
        """
        condition = (
            (Job.id == job_id)
            & (Job.status == JobStatus.processing.value)
            & (Job.updated_at == observed_updated_at)
        )
        return await self._transition(job_id, condition, attempts=Job.attempts + 1)

    async def complete(self, job_id: str, artifact_ref: str) -> bool:
        """Move a job from PROCESSING to COMPLETE with its artifact reference."""
        if not artifact_ref:
            raise ValueError('A completed job requires an artifact reference')
        condition = (Job.id == job_id) & (Job.status == JobStatus.processing.value)
        job = await self._transition(
            job_id,
            condition,
            status=JobStatus.complete.value,
            artifact_ref=artifact_ref,
            error_message=None,
        )
        return job is not None

    async def fail(self, job_id: str, error_message: str) -> bool:
        """Move a job from PROCESSING to FAILED with an error note."""
        condition = (Job.id == job_id) & (Job.status == JobStatus.processing.value)
        job = await self._transition(
            job_id,
            condition,
            status=JobStatus.failed.value,
            artifact_ref=None,
            error_message=error_message,
        )
        return job is not None

    async def _transition(self, job_id: str, condition, **values) -> Optional[Job]:
        values['updated_at'] = datetime.utcnow()
        statement = (
            update(Job)
            .where(condition)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._session() as session:
            result = await session.execute(statement)
            if result.rowcount != 1:
                await session.rollback()
                return None
            await session.commit()
            return await self._load(session, job_id)

    @staticmethod
    async def _load(session: AsyncSession, job_id: str) -> Optional[Job]:
        result = await session.execute(select(Job).where(Job.id == job_id))
        return result.scalar_one_or_none()


# Singleton instance
_job_store: Optional[JobStore] = None


def get_job_store() -> JobStore:
    """Get the job store singleton instance."""
    global _job_store
    if _job_store is None:
        _job_store = JobStore()
    return _job_store


def reset_job_store():
    """Reset the job store singleton (for testing)."""
    global _job_store
    _job_store = None
