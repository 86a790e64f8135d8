"""Synthetic points bursts for exercising the merge window end to end."""

from datetime import datetime, timedelta
from uuid import uuid4

from app.domain.models import NotificationEvent, Participant
from app.domain.states import NotificationRule, PointsDisplay

POINTS_BURST_JOB = "points_burst_simulation"

def build_points_burst(
    participant: Participant,
    display: PointsDisplay,
    total_events: int,
    delta_per_event: int,
    duration_sec: float,
    start: datetime,
) -> list[NotificationEvent]:
    """
    `total_events` points_updated events, each adding `delta_per_event` on top
    of the participant's current balance, timestamped evenly across
    `duration_sec` from `start`.
    """
    interval = duration_sec / (total_events - 1) if total_events > 1 else 0.0
    prefix = "unused_points" if display == PointsDisplay.UNUSED_POINTS else "points"
    current = participant.unused_points if display == PointsDisplay.UNUSED_POINTS else participant.points
    burst_id = str(uuid4())

    events = []
    for i in range(total_events):
        before = current + i * delta_per_event
        events.append(
            NotificationEvent(
                program_id=participant.program_id,
                participant_uuid=participant.participant_uuid,
                rule=NotificationRule.POINTS_UPDATED,
                data={
                    f"{prefix}_before": before,
                    f"{prefix}_after": before + delta_per_event,
                    "simulation": True,
                    "burst_id": burst_id,
                },
                timestamp=start + timedelta(seconds=i * interval),
            )
        )
    return events
