from datetime import datetime
from typing import Any, Optional
from uuid import UUID
import logging

from app.db.store import JobStore
from app.domain.models import JobDomain
from app.domain.states import JobStatus
from app.domain.errors import JobNotFoundError, InvalidJobStateError
from app.api.v1.metrics import JOB_DURATION, JOB_COMPLETE_TOTAL
from app.utils.time import utcnow

logger = logging.getLogger(__name__)

async def complete_job(
    store: JobStore,
    job_id: UUID,
    result_data: Optional[dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> JobDomain:
    """
    Marks a PROCESSING job as COMPLETED and saves the result.
    Any other current status is rejected.
    """
    now = now or utcnow()

    job = await store.update_where(
        job_id,
        JobStatus.PROCESSING,
        {
            "status": JobStatus.COMPLETED,
            "result": result_data if result_data is not None else {},
            "completed_at": now,
            "updated_at": now,
        },
    )

    if job is None:
        current = await store.select_by_id(job_id)
        if current is None:
            raise JobNotFoundError(job_id)
        raise InvalidJobStateError(current.status, JobStatus.COMPLETED)

    # Observe duration
    if job.started_at:
        duration = (now - job.started_at).total_seconds()
        if duration > 0:
            JOB_DURATION.observe(duration)

    JOB_COMPLETE_TOTAL.labels(job_type=job.type).inc()
    logger.info("Completed job %s type=%s", job.id, job.type)
    return job
