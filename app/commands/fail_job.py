from datetime import datetime
from typing import Optional
from uuid import UUID
import logging

from app.db.store import JobStore
from app.domain.models import JobDomain
from app.domain.states import JobStatus
from app.domain.retry import calculate_next_run, DEFAULT_BASE_DELAY_MS, DEFAULT_MAX_DELAY_MS
from app.domain.errors import JobNotFoundError
from app.api.v1.metrics import JOB_FAILURES
from app.utils.time import utcnow

logger = logging.getLogger(__name__)

async def fail_job(
    store: JobStore,
    job_id: UUID,
    error: str,
    terminal: bool = False,
    now: Optional[datetime] = None,
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
    max_delay_ms: int = DEFAULT_MAX_DELAY_MS,
) -> JobDomain:
    """
    Records a failed attempt.

    attempts < max_attempts: back to PENDING, eligible again after backoff.
    Otherwise (or when `terminal`): FAILED with completed_at stamped.

    attempts was already incremented by the lease, so the job is never
    re-leased once attempts == max_attempts.
    """
    now = now or utcnow()

    job = await store.select_by_id(job_id)
    if not job:
        raise JobNotFoundError(job_id)

    if not terminal and job.attempts < job.max_attempts:
        # Retry
        next_run = calculate_next_run(job.attempts, now, base_delay_ms, max_delay_ms)
        patch = {
            "status": JobStatus.PENDING,
            "scheduled_at": next_run,
            "error": error,
            "updated_at": now,
        }
        kind = "retryable"
    else:
        patch = {
            "status": JobStatus.FAILED,
            "error": error,
            "completed_at": now,
            "updated_at": now,
        }
        kind = "final"

    updated = await store.update_where(job_id, JobStatus.PROCESSING, patch)
    if updated is None:
        # Cancelled (or otherwise moved) while the handler was running
        current = await store.select_by_id(job_id) or job
        logger.warning("Ignoring failure for job %s in status %s: %s", job_id, current.status, error)
        return current

    JOB_FAILURES.labels(job_type=updated.type, kind=kind).inc()
    if kind == "retryable":
        logger.info(
            "Job %s failed (attempt %s/%s), retry at %s: %s",
            job_id, updated.attempts, updated.max_attempts, updated.scheduled_at.isoformat(), error,
        )
    else:
        logger.error("Job %s failed permanently after %s attempts: %s", job_id, updated.attempts, error)

    return updated
