from datetime import datetime
from typing import Optional, Sequence
import logging

from app.db.store import JobStore
from app.domain.models import JobDomain
from app.domain.states import JobStatus
from app.api.v1.metrics import JOB_LEASE_TIME, JOB_LEASE_TOTAL
from app.utils.time import utcnow

logger = logging.getLogger(__name__)

async def lease_job(
    store: JobStore,
    types: Optional[Sequence[str]] = None,
    now: Optional[datetime] = None,
) -> Optional[JobDomain]:
    """
    Claims the oldest eligible pending job.

    Two steps:
        1. Select the oldest PENDING job with scheduled_at <= now (optionally
           restricted to `types`; an empty list means no restriction).
        2. Conditionally flip it to PROCESSING, guarded by status='pending'.

    Returns None when nothing is eligible or when another worker won the claim
    between step 1 and step 2. Callers treat None as "try again later".
    """
    now = now or utcnow()

    candidate = await store.select_one_eligible(types or None, now)
    if candidate is None:
        return None

    job = await store.update_where(
        candidate.id,
        JobStatus.PENDING,
        {
            "status": JobStatus.PROCESSING,
            "started_at": now,
            "attempts": candidate.attempts + 1,
            "updated_at": now,
        },
    )

    if job is None:
        logger.debug("Lost claim race for job %s", candidate.id)
        return None

    # Metrics
    JOB_LEASE_TOTAL.labels(job_type=job.type).inc()
    delay = (now - candidate.scheduled_at).total_seconds()
    if delay >= 0:
        JOB_LEASE_TIME.observe(delay)

    logger.info("Leased job %s type=%s attempt=%s/%s", job.id, job.type, job.attempts, job.max_attempts)
    return job
