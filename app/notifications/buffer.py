"""
Per-(participant, rule) merge buffers.

A buffer opens on the first event for its key and closes at a deadline fixed
at that moment (`merge_window_ends`); later events join it but never move
the deadline, which bounds how late a notification can be.

The deferred flush is a `flush_buffer` job scheduled at the deadline and run
by the worker runtime. Each buffer carries a random token, copied into its
flush job, so a job that outlived its buffer (already flushed and replaced,
or left over from before a restart) does nothing.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from app.api.v1.metrics import NOTIFICATION_EVENTS, NOTIFICATIONS_THROTTLED
from app.domain.models import (
    BufferKey,
    JobDomain,
    NotificationBuffer,
    NotificationEvent,
    NotificationSettings,
)
from app.domain.errors import JobError, NotificationError
from app.domain.payloads import FlushBufferPayload
from app.domain.states import FLUSH_BUFFER_JOB
from app.notifications.composer import NotificationComposer
from app.notifications.throttle import ThrottleTracker
from app.services.job_queue import JobQueue
from app.utils.time import Clock, utcnow

logger = logging.getLogger(__name__)

class EventBufferManager:
    def __init__(
        self,
        queue: JobQueue,
        composer: NotificationComposer,
        throttle: Optional[ThrottleTracker] = None,
        default_settings: Optional[NotificationSettings] = None,
        clock: Clock = utcnow,
    ):
        self.queue = queue
        self.composer = composer
        self.throttle = throttle if throttle is not None else ThrottleTracker()
        self.default_settings = default_settings if default_settings is not None else NotificationSettings()
        self.clock = clock
        self._buffers: Dict[BufferKey, NotificationBuffer] = {}
        self._lock = asyncio.Lock()

    def get_buffer(self, key: BufferKey) -> Optional[NotificationBuffer]:
        return self._buffers.get(key)

    def __len__(self) -> int:
        return len(self._buffers)

    async def queue_event(
        self,
        event: NotificationEvent,
        settings: Optional[NotificationSettings] = None,
    ) -> NotificationBuffer:
        """Adds the event to its key's buffer, opening a new buffer if needed."""
        settings = settings or self.default_settings
        key = BufferKey(event.participant_uuid, event.rule)
        NOTIFICATION_EVENTS.labels(rule=event.rule).inc()

        async with self._lock:
            now = self.clock()
            buffer = self._buffers.get(key)

            if buffer is not None and now < buffer.merge_window_ends:
                buffer.events.append(event)
                logger.debug(f"Merged event {event.id} into {key} ({len(buffer.events)} buffered)")
                return buffer

            if buffer is not None:
                # Deadline passed but the scheduled flush has not run yet
                logger.info(f"Buffer {key} expired at {buffer.merge_window_ends.isoformat()}, flushing before reopening")
                try:
                    await self._flush_locked(key)
                except (NotificationError, JobError):
                    # The new event still gets a buffer
                    logger.exception(f"Flushing expired buffer {key} failed; its events are dropped")

            return await self._open_buffer(key, event, settings, now)

    async def _open_buffer(self, key, event, settings, now) -> NotificationBuffer:
        buffer = NotificationBuffer(
            participant_uuid=event.participant_uuid,
            rule=event.rule,
            program_id=event.program_id,
            merge_window_ends=now + timedelta(seconds=settings.merge_window_sec),
            settings=settings,
            events=[event],
        )

        # Schedule first; if the store rejects it the buffer is never opened
        await self.queue.enqueue(
            FLUSH_BUFFER_JOB,
            {"participant_uuid": key.participant_uuid, "rule": key.rule, "token": buffer.token},
            scheduled_at=buffer.merge_window_ends,
            max_attempts=1,
        )

        self._buffers[key] = buffer
        logger.info(f"Opened buffer {key} token={buffer.token}, window ends {buffer.merge_window_ends.isoformat()}")
        return buffer

    async def flush_buffer(self, key: BufferKey, token: Optional[str] = None) -> Optional[JobDomain]:
        """
        Closes the buffer for `key` and sends its merged notification unless
        throttled. When `token` is given and does not match the live buffer,
        nothing happens.
        """
        async with self._lock:
            if token is not None:
                buffer = self._buffers.get(key)
                if buffer is None or buffer.token != token:
                    logger.debug(f"Skipping stale flush for {key}: token {token} is not the live buffer")
                    return None
            return await self._flush_locked(key)

    async def _flush_locked(self, key: BufferKey) -> Optional[JobDomain]:
        # Removed up front: the events are consumed whatever happens next
        buffer = self._buffers.pop(key, None)
        if buffer is None or not buffer.events:
            return None

        now = self.clock()
        settings = buffer.settings
        if self.throttle.is_throttled(key, now, settings.throttle_sec):
            elapsed = self.throttle.seconds_since_last(key, now)
            NOTIFICATIONS_THROTTLED.labels(rule=buffer.rule).inc()
            logger.info(
                f"Throttled notification for {key}. Last sent {elapsed:.1f}s ago, "
                f"throttle is {settings.throttle_sec}s; dropping {len(buffer.events)} event(s)"
            )
            return None

        job = await self.composer.send(buffer)
        # Counts as a send even when nothing was recorded (participant missing)
        self.throttle.mark_sent(key, now)
        return job

    async def flush_all(self) -> int:
        """Flushes every open buffer. Returns how many notifications were recorded."""
        sent = 0
        for key in list(self._buffers):
            if await self.flush_buffer(key):
                sent += 1
        return sent

    async def handle_flush_job(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Worker handler for flush_buffer jobs."""
        data = FlushBufferPayload.model_validate(payload)
        key = BufferKey(data.participant_uuid, data.rule)
        job = await self.flush_buffer(key, data.token)
        return {"notification_job_id": str(job.id) if job else None}
