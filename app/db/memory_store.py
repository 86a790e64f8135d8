import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Optional, Sequence
from uuid import UUID

from app.db.store import ExpectedStatus, JobStore, expected_statuses
from app.domain.models import JobDomain
from app.domain.states import JobStatus

class MemoryJobStore(JobStore):
    """
    Process-local store with the same compare-and-swap contract as the SQL
    store. Used by tests and single-process development runs.
    """

    def __init__(self) -> None:
        self._jobs: Dict[UUID, JobDomain] = {}
        self._lock = asyncio.Lock()

    async def insert(self, job: JobDomain) -> JobDomain:
        async with self._lock:
            self._jobs[job.id] = replace(job)
            return replace(job)

    async def update_where(
        self, job_id: UUID, expected: ExpectedStatus, patch: dict[str, Any]
    ) -> Optional[JobDomain]:
        statuses = expected_statuses(expected)
        async with self._lock:
            current = self._jobs.get(job_id)
            if current is None or current.status not in statuses:
                return None
            updated = replace(current, **patch)
            self._jobs[job_id] = updated
            return replace(updated)

    async def select_one_eligible(
        self, types: Optional[Sequence[str]], now: datetime
    ) -> Optional[JobDomain]:
        async with self._lock:
            eligible = [
                job for job in self._jobs.values()
                if job.status == JobStatus.PENDING
                and job.scheduled_at <= now
                and (not types or job.type in types)
            ]
            if not eligible:
                return None
            return replace(min(eligible, key=lambda job: job.scheduled_at))

    async def select_by_id(self, job_id: UUID) -> Optional[JobDomain]:
        job = self._jobs.get(job_id)
        return replace(job) if job else None

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        job_type: Optional[str] = None,
        limit: int = 50,
    ) -> list[JobDomain]:
        jobs = [
            job for job in self._jobs.values()
            if (status is None or job.status == status)
            and (job_type is None or job.type == job_type)
        ]
        jobs.sort(key=lambda job: job.created_at, reverse=True)
        return [replace(job) for job in jobs[:limit]]
