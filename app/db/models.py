from datetime import datetime
from typing import Optional, Any
from uuid import UUID, uuid4

from sqlalchemy import String, Integer, DateTime, Index, Uuid, text, JSON
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import JSONB

from app.db.session import Base
from app.domain.models import JobDomain
from app.domain.states import JobStatus
from app.utils.time import ensure_aware, utcnow

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JsonColumn = JSON().with_variant(JSONB(), "postgresql")

class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    type: Mapped[str] = mapped_column(String, nullable=False, index=True)

    # Core orchestration fields
    status: Mapped[JobStatus] = mapped_column(String, default=JobStatus.PENDING, index=True)

    # Scheduling fields
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    # Retry logic
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3)
    error: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # Payload
    payload: Mapped[dict[str, Any]] = mapped_column(JsonColumn, default=dict)
    result: Mapped[Optional[dict[str, Any]]] = mapped_column(JsonColumn, nullable=True)

    __table_args__ = (
        # Optimization for "poll" query: status=pending + scheduled_at <= now
        Index("ix_jobs_poll", "status", "scheduled_at", postgresql_where=text("status = 'pending'")),
    )

    @classmethod
    def from_domain(cls, job: JobDomain) -> "Job":
        return cls(
            id=job.id,
            type=job.type,
            status=job.status,
            payload=job.payload,
            result=job.result,
            error=job.error,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            scheduled_at=job.scheduled_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )

    def to_domain(self) -> JobDomain:
        return JobDomain(
            id=self.id,
            type=self.type,
            status=JobStatus(self.status),
            payload=dict(self.payload or {}),
            result=self.result,
            error=self.error,
            attempts=self.attempts,
            max_attempts=self.max_attempts,
            scheduled_at=ensure_aware(self.scheduled_at),
            started_at=ensure_aware(self.started_at),
            completed_at=ensure_aware(self.completed_at),
            created_at=ensure_aware(self.created_at),
            updated_at=ensure_aware(self.updated_at),
        )
