import logging
from dataclasses import dataclass
from typing import Any, Optional

from app.api.v1.metrics import EVENTS_MERGED, NOTIFICATIONS_SENT
from app.domain.models import JobDomain, NotificationBuffer, NotificationEvent
from app.domain.states import NOTIFICATION_SENT_JOB, NotificationRule, PointsDisplay
from app.notifications.directory import ParticipantDirectory
from app.notifications.merge_tags import DEFAULT_POINTS_TEMPLATE, MergeTagContext, MergeTagResolver
from app.services.job_queue import JobQueue

logger = logging.getLogger(__name__)

@dataclass
class PointsChange:
    before: int
    after: int

    @property
    def delta(self) -> int:
        return self.after - self.before

def ordered_events(events: list[NotificationEvent]) -> list[NotificationEvent]:
    # Stable: events sharing a timestamp keep arrival order
    return sorted(events, key=lambda e: e.timestamp)

def points_change(events: list[NotificationEvent], display: PointsDisplay) -> PointsChange:
    """First event's before-value to last event's after-value, by timestamp."""
    if not events:
        return PointsChange(0, 0)

    ordered = ordered_events(events)
    prefix = "unused_points" if display == PointsDisplay.UNUSED_POINTS else "points"
    before = ordered[0].data.get(f"{prefix}_before") or 0
    after = ordered[-1].data.get(f"{prefix}_after") or 0
    return PointsChange(int(before), int(after))

class NotificationComposer:
    """
    Turns a closed buffer into one outbound message and records it as a
    completed notification_sent job. Delivery itself is not done here.
    """

    def __init__(
        self,
        queue: JobQueue,
        directory: ParticipantDirectory,
        resolver: Optional[MergeTagResolver] = None,
        points_template: str = DEFAULT_POINTS_TEMPLATE,
    ):
        self.queue = queue
        self.directory = directory
        self.resolver = resolver if resolver is not None else MergeTagResolver()
        self.points_template = points_template

    async def compose(self, buffer: NotificationBuffer) -> Optional[dict[str, Any]]:
        """Returns the notification_sent payload, or None if nothing can be sent."""
        payload: dict[str, Any] = {
            "participant_uuid": buffer.participant_uuid,
            "rule": buffer.rule,
            "program_id": buffer.program_id,
            "events_merged": len(buffer.events),
            "first_event_time": buffer.first_event_time.isoformat(),
            "last_event_time": buffer.last_event_time.isoformat(),
        }

        if buffer.rule != NotificationRule.POINTS_UPDATED:
            # Other rules carry only the merged count for now
            return payload

        change = points_change(buffer.events, buffer.settings.points_display)

        participant = await self.directory.get_participant(buffer.program_id, buffer.participant_uuid)
        if not participant:
            logger.error(f"Participant not found: {buffer.participant_uuid} (program {buffer.program_id})")
            return None

        program = await self.directory.get_program(participant.program_id)

        tags = self.resolver.resolve(
            MergeTagContext(
                participant=participant,
                program=program,
                points_delta=change.delta,
                new_points=change.after,
            )
        )
        payload["message"] = self.resolver.substitute(self.points_template, tags)
        payload["points_delta"] = change.delta
        payload["new_points"] = change.after
        return payload

    async def send(self, buffer: NotificationBuffer) -> Optional[JobDomain]:
        payload = await self.compose(buffer)
        if payload is None:
            return None

        job = await self.queue.record_completed(NOTIFICATION_SENT_JOB, payload, {"sent": True})

        NOTIFICATIONS_SENT.labels(rule=buffer.rule).inc()
        EVENTS_MERGED.observe(payload["events_merged"])
        logger.info(
            f"Recorded {buffer.rule} notification for {buffer.participant_uuid}: "
            f"merged {payload['events_merged']} events from {payload['first_event_time']} "
            f"to {payload['last_event_time']}"
        )
        return job
