from datetime import datetime
from typing import Any, Optional
import logging

from app.db.store import JobStore
from app.domain.models import JobDomain
from app.domain.payloads import validate_payload
from app.domain.states import JobStatus
from app.api.v1.metrics import JOBS_ENQUEUED
from app.utils.time import utcnow

logger = logging.getLogger(__name__)

async def enqueue_job(
    store: JobStore,
    job_type: str,
    payload: dict[str, Any],
    scheduled_at: Optional[datetime] = None,
    max_attempts: int = 3,
    now: Optional[datetime] = None,
) -> JobDomain:
    """
    Inserts a PENDING job. Known job types have their payload validated first,
    so a bad payload never reaches the store.
    """
    now = now or utcnow()

    job = JobDomain(
        type=job_type,
        status=JobStatus.PENDING,
        payload=validate_payload(job_type, payload),
        scheduled_at=scheduled_at or now,
        attempts=0,
        max_attempts=max_attempts,
        created_at=now,
        updated_at=now,
    )
    job = await store.insert(job)

    JOBS_ENQUEUED.labels(job_type=job_type).inc()
    logger.info("Enqueued job %s type=%s scheduled_at=%s", job.id, job.type, job.scheduled_at.isoformat())
    return job

async def record_completed_job(
    store: JobStore,
    job_type: str,
    payload: dict[str, Any],
    result: Optional[dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> JobDomain:
    """
    Inserts a row that is already COMPLETED. Used for audit-style records such
    as notification_sent, which never pass through a worker.
    """
    now = now or utcnow()

    job = JobDomain(
        type=job_type,
        status=JobStatus.COMPLETED,
        payload=validate_payload(job_type, payload),
        result=result if result is not None else {},
        attempts=1,
        max_attempts=1,
        scheduled_at=now,
        started_at=now,
        completed_at=now,
        created_at=now,
        updated_at=now,
    )
    return await store.insert(job)
