import logging
from dataclasses import dataclass
from typing import Optional

from app.db.store import JobStore
from app.domain.models import NotificationSettings
from app.domain.states import FLUSH_BUFFER_JOB
from app.notifications.buffer import EventBufferManager
from app.notifications.composer import NotificationComposer
from app.notifications.directory import HttpParticipantDirectory, InMemoryDirectory, ParticipantDirectory
from app.notifications.throttle import ThrottleTracker
from app.scheduler.runtime import WorkerRuntime
from app.services.job_queue import JobQueue
from app.settings import Settings
from app.utils.time import Clock, utcnow

logger = logging.getLogger(__name__)

@dataclass
class Services:
    queue: JobQueue
    notifications: EventBufferManager
    runtime: WorkerRuntime
    directory: ParticipantDirectory

def build_directory(settings: Settings) -> ParticipantDirectory:
    if settings.PARTICIPANT_API_URL:
        return HttpParticipantDirectory(
            settings.PARTICIPANT_API_URL,
            api_key=settings.PARTICIPANT_API_KEY,
            timeout=settings.PARTICIPANT_API_TIMEOUT_SECONDS,
        )
    logger.warning("PARTICIPANT_API_URL not set; using an empty in-memory participant directory")
    return InMemoryDirectory()

def build_services(
    store: JobStore,
    settings: Settings,
    directory: Optional[ParticipantDirectory] = None,
    clock: Clock = utcnow,
) -> Services:
    """Wires the queue, notification engine and worker runtime around one store."""
    queue = JobQueue(
        store,
        default_max_attempts=settings.JOB_DEFAULT_MAX_ATTEMPTS,
        backoff_base_ms=settings.JOB_BACKOFF_BASE_MS,
        backoff_max_ms=settings.JOB_BACKOFF_MAX_MS,
        clock=clock,
    )
    if directory is None:
        directory = build_directory(settings)

    composer = NotificationComposer(queue, directory, points_template=settings.NOTIFY_POINTS_TEMPLATE)
    notifications = EventBufferManager(
        queue,
        composer,
        ThrottleTracker(),
        default_settings=NotificationSettings.from_overrides(
            merge_window_sec=settings.NOTIFY_MERGE_WINDOW_SEC,
            throttle_sec=settings.NOTIFY_THROTTLE_SEC,
            points_display=settings.NOTIFY_POINTS_DISPLAY,
        ),
        clock=clock,
    )

    runtime = WorkerRuntime(
        queue,
        {FLUSH_BUFFER_JOB: notifications.handle_flush_job},
        poll_interval_ms=settings.WORKER_POLL_INTERVAL_MS,
        max_concurrent=settings.WORKER_MAX_CONCURRENT,
    )

    return Services(queue=queue, notifications=notifications, runtime=runtime, directory=directory)
