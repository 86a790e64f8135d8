"""
Typed payloads for the job types the system knows about.

Each known type maps to one pydantic model. Payloads are validated at enqueue
time and stored as plain JSON dicts; caller-supplied types without a model are
stored as given.
"""

from datetime import datetime
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.domain.errors import PayloadValidationError
from app.domain.states import FLUSH_BUFFER_JOB, NOTIFICATION_SENT_JOB, NotificationRule

class JobPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

class BulkResyncPassesPayload(JobPayload):
    program_id: str
    pass_kind: Optional[str] = None
    template_id: Optional[str] = None

class FlushBufferPayload(JobPayload):
    model_config = ConfigDict(extra="forbid")

    participant_uuid: str
    rule: NotificationRule
    token: str = Field(min_length=1)

class NotificationSentPayload(JobPayload):
    participant_uuid: str
    rule: NotificationRule
    events_merged: int = Field(ge=1)
    program_id: Optional[str] = None
    message: Optional[str] = None
    points_delta: Optional[int] = None
    new_points: Optional[int] = None
    first_event_time: Optional[datetime] = None
    last_event_time: Optional[datetime] = None

class SendNotificationPayload(JobPayload):
    participant_uuid: str
    rule: NotificationRule = NotificationRule.MANUAL
    message: str

PAYLOAD_MODELS: dict[str, type[JobPayload]] = {
    "bulk_resync_passes": BulkResyncPassesPayload,
    FLUSH_BUFFER_JOB: FlushBufferPayload,
    NOTIFICATION_SENT_JOB: NotificationSentPayload,
    "send_notification": SendNotificationPayload,
}

def validate_payload(job_type: str, payload: Any) -> dict[str, Any]:
    if not isinstance(payload, Mapping):
        raise PayloadValidationError(job_type, "payload must be an object")

    model = PAYLOAD_MODELS.get(job_type)
    if model is None:
        return dict(payload)

    try:
        parsed = model.model_validate(dict(payload))
    except ValidationError as e:
        raise PayloadValidationError(job_type, str(e)) from e

    return parsed.model_dump(mode="json", exclude_none=True)
