from datetime import datetime
from typing import Optional
from uuid import UUID
import logging

from app.db.store import JobStore
from app.domain.states import JobStatus, ACTIVE_STATUSES
from app.utils.time import utcnow

logger = logging.getLogger(__name__)

CANCELLED_ERROR = "Job cancelled"

async def cancel_job(store: JobStore, job_id: UUID, now: Optional[datetime] = None) -> bool:
    """
    Force-fails a pending or processing job. Terminal jobs are left alone.
    A handler that is already running is not interrupted; its eventual
    complete/fail is rejected because the job is no longer PROCESSING.
    """
    now = now or utcnow()

    job = await store.update_where(
        job_id,
        ACTIVE_STATUSES,
        {
            "status": JobStatus.FAILED,
            "error": CANCELLED_ERROR,
            "completed_at": now,
            "updated_at": now,
        },
    )
    if job:
        logger.info("Job %s cancelled", job_id)
    return job is not None

async def retry_job(store: JobStore, job_id: UUID, now: Optional[datetime] = None) -> bool:
    """Resets a FAILED job to a fresh PENDING job. No-op for any other status."""
    now = now or utcnow()

    job = await store.update_where(
        job_id,
        JobStatus.FAILED,
        {
            "status": JobStatus.PENDING,
            "attempts": 0,
            "error": None,
            "started_at": None,
            "completed_at": None,
            "scheduled_at": now,
            "updated_at": now,
        },
    )
    if job:
        logger.info("Job %s reset for retry", job_id)
    return job is not None
