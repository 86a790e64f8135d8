import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from app.api.deps import AppServices, Notifications
from app.domain.models import NotificationEvent, NotificationSettings
from app.domain.states import NotificationRule, PointsDisplay
from app.notifications.simulate import POINTS_BURST_JOB, build_points_burst
from app.utils.time import ensure_aware

logger = logging.getLogger(__name__)

router = APIRouter()

class SettingsOverride(BaseModel):
    merge_window_sec: Optional[int] = Field(default=None, ge=0)
    throttle_sec: Optional[int] = Field(default=None, ge=0)
    points_display: Optional[PointsDisplay] = None

class EventCreate(BaseModel):
    program_id: str
    participant_uuid: str
    rule: NotificationRule
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None
    id: Optional[str] = None
    settings: Optional[SettingsOverride] = None

class EventAccepted(BaseModel):
    event_id: str
    buffer_key: str
    events_buffered: int
    merge_window_ends: datetime

class PointsBurstRequest(BaseModel):
    program_id: str
    participant_uuid: str
    total_events: int = Field(default=5, ge=1, le=20)
    delta_per_event: int = Field(default=5, ge=1, le=100)
    duration_sec: int = Field(default=90, ge=10, le=300)

def _merge_settings(defaults: NotificationSettings, override: Optional[SettingsOverride]) -> NotificationSettings:
    if override is None:
        return defaults
    return NotificationSettings.from_overrides(
        merge_window_sec=override.merge_window_sec,
        throttle_sec=override.throttle_sec,
        points_display=override.points_display,
        defaults=defaults,
    )

@router.post("/events", response_model=EventAccepted, status_code=status.HTTP_202_ACCEPTED)
async def queue_event(body: EventCreate, notifications: Notifications):
    event = NotificationEvent(
        program_id=body.program_id,
        participant_uuid=body.participant_uuid,
        rule=body.rule,
        data=body.data,
    )
    if body.timestamp:
        event.timestamp = ensure_aware(body.timestamp)
    if body.id:
        event.id = body.id

    buffer = await notifications.queue_event(
        event, _merge_settings(notifications.default_settings, body.settings)
    )
    return EventAccepted(
        event_id=event.id,
        buffer_key=str(buffer.key),
        events_buffered=len(buffer.events),
        merge_window_ends=buffer.merge_window_ends,
    )

@router.post("/flush")
async def flush_notifications(notifications: Notifications):
    sent = await notifications.flush_all()
    return {"flushed": sent}

@router.post("/simulate/points-burst")
async def simulate_points_burst(body: PointsBurstRequest, services: AppServices):
    participant = await services.directory.get_participant(body.program_id, body.participant_uuid)
    if not participant:
        raise HTTPException(status_code=404, detail="Participant not found")

    program = await services.directory.get_program(body.program_id)
    if not program:
        raise HTTPException(status_code=404, detail="Program not found")

    notifications = services.notifications
    settings = NotificationSettings.from_overrides(
        points_display=program.settings.get("points_display"),
        defaults=notifications.default_settings,
    )

    start = notifications.clock()
    events = build_points_burst(
        participant,
        settings.points_display,
        body.total_events,
        body.delta_per_event,
        body.duration_sec,
        start,
    )
    logger.info(
        f"Simulating points burst: {len(events)} events over {body.duration_sec}s "
        f"for participant {participant.participant_uuid}"
    )
    for event in events:
        await notifications.queue_event(event, settings)

    end = start + timedelta(seconds=body.duration_sec)
    job = await services.queue.record_completed(
        POINTS_BURST_JOB,
        {
            "program_id": body.program_id,
            "participant_uuid": body.participant_uuid,
            "total_events": body.total_events,
            "delta_per_event": body.delta_per_event,
            "duration_sec": body.duration_sec,
            "points_display": settings.points_display,
        },
        {
            "simulated": True,
            "events_queued": len(events),
            "start_time": start.isoformat(),
            "end_time": end.isoformat(),
        },
    )
    return {
        "job_id": str(job.id),
        "events_queued": len(events),
        "points_display": settings.points_display,
        "start_time": start.isoformat(),
        "end_time": end.isoformat(),
    }
