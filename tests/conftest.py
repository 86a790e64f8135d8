from datetime import datetime, timedelta, timezone

import pytest

from app.db.memory_store import MemoryJobStore
from app.domain.models import NotificationSettings, Participant, Program
from app.notifications.buffer import EventBufferManager
from app.notifications.composer import NotificationComposer
from app.notifications.directory import InMemoryDirectory
from app.notifications.throttle import ThrottleTracker
from app.services.job_queue import JobQueue

PROGRAM_ID = "prog-1"
PARTICIPANT_UUID = "p-123"

class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def store():
    return MemoryJobStore()

@pytest.fixture
def queue(store, clock):
    return JobQueue(store, clock=clock)

@pytest.fixture
def directory():
    directory = InMemoryDirectory()
    directory.add_program(Program(id=PROGRAM_ID, name="Coffee Club"))
    directory.add_participant(
        Participant(
            participant_uuid=PARTICIPANT_UUID,
            program_id=PROGRAM_ID,
            email="ada@example.com",
            points=500,
            unused_points=100,
            status="active",
            tier="gold",
            fname="Ada",
            lname="Lovelace",
        )
    )
    return directory

@pytest.fixture
def throttle():
    return ThrottleTracker()

@pytest.fixture
def buffers(queue, directory, throttle, clock):
    composer = NotificationComposer(queue, directory)
    return EventBufferManager(
        queue,
        composer,
        throttle,
        default_settings=NotificationSettings(merge_window_sec=120, throttle_sec=300),
        clock=clock,
    )
