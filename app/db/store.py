import logging
from datetime import datetime
from typing import Any, Iterable, Optional, Protocol, Sequence, Union
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models import Job
from app.domain.errors import JobStoreError
from app.domain.models import JobDomain
from app.domain.states import JobStatus

logger = logging.getLogger(__name__)

ExpectedStatus = Union[JobStatus, Iterable[JobStatus]]

def expected_statuses(expected: ExpectedStatus) -> tuple[JobStatus, ...]:
    if isinstance(expected, JobStatus):
        return (expected,)
    return tuple(expected)

class JobStore(Protocol):
    async def insert(self, job: JobDomain) -> JobDomain:
        ...

    async def update_where(
        self, job_id: UUID, expected: ExpectedStatus, patch: dict[str, Any]
    ) -> Optional[JobDomain]:
        """
        Applies `patch` only if the job's current status is one of `expected`.
        Returns the updated job, or None when the guard did not match.
        This is the compare-and-swap primitive leasing relies on.
        """
        ...

    async def select_one_eligible(
        self, types: Optional[Sequence[str]], now: datetime
    ) -> Optional[JobDomain]:
        ...

    async def select_by_id(self, job_id: UUID) -> Optional[JobDomain]:
        ...

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        job_type: Optional[str] = None,
        limit: int = 50,
    ) -> list[JobDomain]:
        ...

class SqlJobStore(JobStore):
    """
    SQLAlchemy-backed store. One short transaction per call.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self._sessionmaker = sessionmaker

    async def insert(self, job: JobDomain) -> JobDomain:
        try:
            async with self._sessionmaker() as session:
                async with session.begin():
                    row = Job.from_domain(job)
                    session.add(row)
                    await session.flush()
                return row.to_domain()
        except SQLAlchemyError as e:
            raise JobStoreError(f"Failed to insert job: {e}") from e

    async def update_where(
        self, job_id: UUID, expected: ExpectedStatus, patch: dict[str, Any]
    ) -> Optional[JobDomain]:
        statuses = [s.value for s in expected_statuses(expected)]

        # UPDATE jobs SET ... WHERE id = :id AND status IN (...) RETURNING *
        stmt = (
            update(Job)
            .where(Job.id == job_id, Job.status.in_(statuses))
            .values(**patch)
            .returning(Job)
        )
        try:
            async with self._sessionmaker() as session:
                async with session.begin():
                    result = await session.execute(stmt)
                    row = result.scalar_one_or_none()
                    return row.to_domain() if row else None
        except SQLAlchemyError as e:
            raise JobStoreError(f"Failed to update job {job_id}: {e}") from e

    async def select_one_eligible(
        self, types: Optional[Sequence[str]], now: datetime
    ) -> Optional[JobDomain]:
        stmt = (
            select(Job)
            .where(Job.status == JobStatus.PENDING, Job.scheduled_at <= now)
            .order_by(Job.scheduled_at.asc())
            # Postgres skips rows another worker is claiming; ignored by SQLite
            .with_for_update(skip_locked=True)
            .limit(1)
        )
        if types:
            stmt = stmt.where(Job.type.in_(list(types)))

        try:
            async with self._sessionmaker() as session:
                async with session.begin():
                    row = (await session.execute(stmt)).scalar_one_or_none()
                    return row.to_domain() if row else None
        except SQLAlchemyError as e:
            raise JobStoreError(f"Failed to select eligible job: {e}") from e

    async def select_by_id(self, job_id: UUID) -> Optional[JobDomain]:
        try:
            async with self._sessionmaker() as session:
                row = await session.get(Job, job_id)
                return row.to_domain() if row else None
        except SQLAlchemyError as e:
            raise JobStoreError(f"Failed to fetch job {job_id}: {e}") from e

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        job_type: Optional[str] = None,
        limit: int = 50,
    ) -> list[JobDomain]:
        stmt = select(Job).order_by(Job.created_at.desc()).limit(limit)
        if status:
            stmt = stmt.where(Job.status == status)
        if job_type:
            stmt = stmt.where(Job.type == job_type)

        try:
            async with self._sessionmaker() as session:
                rows = (await session.execute(stmt)).scalars().all()
                return [row.to_domain() for row in rows]
        except SQLAlchemyError as e:
            raise JobStoreError(f"Failed to list jobs: {e}") from e
