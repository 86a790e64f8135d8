import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Sequence
from uuid import UUID

from app.commands.cancel_job import cancel_job, retry_job
from app.commands.complete_job import complete_job
from app.commands.enqueue_job import enqueue_job, record_completed_job
from app.commands.fail_job import fail_job
from app.commands.lease_job import lease_job
from app.db.store import JobStore
from app.domain.models import JobDomain
from app.domain.retry import DEFAULT_BASE_DELAY_MS, DEFAULT_MAX_DELAY_MS
from app.domain.states import JobStatus
from app.utils.time import Clock, utcnow

logger = logging.getLogger(__name__)

Handler = Callable[[dict], Awaitable[Any]]

class JobQueue:
    """
    Typed API over a JobStore.

    State machine: pending -> processing -> {completed | pending (retry) | failed}.
    Store errors propagate to the caller unchanged.
    """

    def __init__(
        self,
        store: JobStore,
        default_max_attempts: int = 3,
        backoff_base_ms: int = DEFAULT_BASE_DELAY_MS,
        backoff_max_ms: int = DEFAULT_MAX_DELAY_MS,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.default_max_attempts = default_max_attempts
        self.backoff_base_ms = backoff_base_ms
        self.backoff_max_ms = backoff_max_ms
        self.clock = clock

    async def enqueue(
        self,
        job_type: str,
        payload: dict[str, Any],
        scheduled_at: Optional[datetime] = None,
        max_attempts: Optional[int] = None,
    ) -> JobDomain:
        return await enqueue_job(
            self.store,
            job_type,
            payload,
            scheduled_at=scheduled_at,
            max_attempts=max_attempts or self.default_max_attempts,
            now=self.clock(),
        )

    async def dequeue(self, types: Optional[Sequence[str]] = None) -> Optional[JobDomain]:
        return await lease_job(self.store, types, now=self.clock())

    async def complete(self, job_id: UUID, result: Optional[dict[str, Any]] = None) -> JobDomain:
        return await complete_job(self.store, job_id, result, now=self.clock())

    async def fail(self, job_id: UUID, error: str, terminal: bool = False) -> JobDomain:
        return await fail_job(
            self.store,
            job_id,
            error,
            terminal=terminal,
            now=self.clock(),
            base_delay_ms=self.backoff_base_ms,
            max_delay_ms=self.backoff_max_ms,
        )

    async def cancel(self, job_id: UUID) -> bool:
        return await cancel_job(self.store, job_id, now=self.clock())

    async def retry(self, job_id: UUID) -> bool:
        return await retry_job(self.store, job_id, now=self.clock())

    async def record_completed(
        self,
        job_type: str,
        payload: dict[str, Any],
        result: Optional[dict[str, Any]] = None,
    ) -> JobDomain:
        return await record_completed_job(self.store, job_type, payload, result, now=self.clock())

    async def get(self, job_id: UUID) -> Optional[JobDomain]:
        return await self.store.select_by_id(job_id)

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        job_type: Optional[str] = None,
        limit: int = 50,
    ) -> list[JobDomain]:
        return await self.store.list_jobs(status=status, job_type=job_type, limit=limit)

    async def process_job(self, job: JobDomain, handler: Handler) -> JobDomain:
        """
        Runs `handler(job.payload)` and records the outcome.
        A handler exception is recorded via fail() and then re-raised.
        """
        try:
            result = await handler(job.payload)
        except Exception as e:
            error_msg = str(e) or type(e).__name__
            await self.fail(job.id, error_msg)
            raise

        if result is not None and not isinstance(result, dict):
            result = {"value": result}
        return await self.complete(job.id, result)
