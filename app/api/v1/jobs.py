from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from app.api.deps import Queue
from app.domain.states import JobStatus

router = APIRouter()

class JobCreate(BaseModel):
    type: str = Field(min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)
    scheduled_at: Optional[datetime] = None
    max_attempts: Optional[int] = Field(default=None, ge=1)

class JobResponse(BaseModel):
    id: UUID
    type: str
    status: JobStatus
    payload: dict[str, Any]
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    attempts: int
    max_attempts: int
    scheduled_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)

class JobActionResponse(BaseModel):
    job_id: UUID
    changed: bool
    status: JobStatus

@router.post("", response_model=JobResponse, status_code=status.HTTP_201_CREATED)
async def create_job(body: JobCreate, queue: Queue):
    return await queue.enqueue(
        body.type,
        body.payload,
        scheduled_at=body.scheduled_at,
        max_attempts=body.max_attempts,
    )

@router.get("", response_model=list[JobResponse])
async def list_jobs(
    queue: Queue,
    status_filter: Optional[JobStatus] = Query(default=None, alias="status"),
    job_type: Optional[str] = Query(default=None, alias="type"),
    limit: int = Query(default=50, ge=1, le=500),
):
    return await queue.list_jobs(status=status_filter, job_type=job_type, limit=limit)

@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: UUID, queue: Queue):
    job = await queue.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job

async def _action_response(queue, job_id: UUID, changed: bool) -> JobActionResponse:
    job = await queue.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobActionResponse(job_id=job.id, changed=changed, status=job.status)

@router.post("/{job_id}/cancel", response_model=JobActionResponse)
async def cancel_job(job_id: UUID, queue: Queue):
    # Cancelling a finished job is a no-op, reported as changed=false
    changed = await queue.cancel(job_id)
    return await _action_response(queue, job_id, changed)

@router.post("/{job_id}/retry", response_model=JobActionResponse)
async def retry_job(job_id: UUID, queue: Queue):
    changed = await queue.retry(job_id)
    return await _action_response(queue, job_id, changed)
