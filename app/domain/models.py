from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Any, NamedTuple
from uuid import UUID, uuid4

from app.domain.states import TERMINAL_STATUSES, JobStatus, NotificationRule, PointsDisplay
from app.utils.time import utcnow

@dataclass
class JobDomain:
    type: str
    status: JobStatus
    payload: dict[str, Any]

    scheduled_at: datetime
    attempts: int = 0
    max_attempts: int = 3

    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

@dataclass
class NotificationEvent:
    program_id: str
    participant_uuid: str
    rule: NotificationRule
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: str(uuid4()))

class BufferKey(NamedTuple):
    participant_uuid: str
    rule: NotificationRule

    def __str__(self) -> str:
        return f"{self.participant_uuid}:{self.rule}"

@dataclass(frozen=True)
class NotificationSettings:
    merge_window_sec: int = 120
    throttle_sec: int = 300
    points_display: PointsDisplay = PointsDisplay.UNUSED_POINTS

    @classmethod
    def from_overrides(
        cls,
        merge_window_sec: Optional[int] = None,
        throttle_sec: Optional[int] = None,
        points_display: Optional[str] = None,
        defaults: Optional["NotificationSettings"] = None,
    ) -> "NotificationSettings":
        # Zero/empty means "not configured", same as absent.
        base = defaults or cls()
        return cls(
            merge_window_sec=merge_window_sec or base.merge_window_sec,
            throttle_sec=throttle_sec or base.throttle_sec,
            points_display=PointsDisplay(points_display) if points_display else base.points_display,
        )

@dataclass
class NotificationBuffer:
    participant_uuid: str
    rule: NotificationRule
    program_id: str
    merge_window_ends: datetime
    settings: NotificationSettings
    token: str = field(default_factory=lambda: uuid4().hex)
    events: list[NotificationEvent] = field(default_factory=list)

    @property
    def key(self) -> BufferKey:
        return BufferKey(self.participant_uuid, self.rule)

    @property
    def first_event_time(self) -> Optional[datetime]:
        return min(e.timestamp for e in self.events) if self.events else None

    @property
    def last_event_time(self) -> Optional[datetime]:
        return max(e.timestamp for e in self.events) if self.events else None

@dataclass
class Participant:
    participant_uuid: str
    program_id: str
    email: Optional[str] = None
    points: int = 0
    unused_points: int = 0
    status: Optional[str] = None
    tier: Optional[str] = None
    fname: Optional[str] = None
    lname: Optional[str] = None
    tag_list: list[str] = field(default_factory=list)
    profile: dict[str, Any] = field(default_factory=dict)

@dataclass
class Program:
    id: str
    name: str
    settings: dict[str, Any] = field(default_factory=dict)
