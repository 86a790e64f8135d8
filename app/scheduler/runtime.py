import asyncio
import logging
from typing import Optional
from uuid import UUID

from app.api.v1.metrics import JOBS_INFLIGHT
from app.domain.models import JobDomain
from app.services.job_queue import Handler, JobQueue

logger = logging.getLogger(__name__)

class WorkerRuntime:
    """
    Polling loop that leases jobs for the registered handler types and runs
    them concurrently, up to `max_concurrent` at a time.

    One tick runs immediately on start, then every `poll_interval_ms`.
    A handler that never returns keeps its slot; there is no execution timeout.
    """

    def __init__(
        self,
        queue: JobQueue,
        handlers: Optional[dict[str, Handler]] = None,
        poll_interval_ms: int = 5000,
        max_concurrent: int = 1,
    ):
        self.queue = queue
        self.handlers: dict[str, Handler] = dict(handlers or {})
        self.poll_interval = poll_interval_ms / 1000
        self.max_concurrent = max_concurrent
        self.running = False
        self.in_flight: set[UUID] = set()
        self._tasks: set[asyncio.Task] = set()
        self._loop_task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()

    def register(self, job_type: str, handler: Handler) -> None:
        self.handlers[job_type] = handler

    async def start(self):
        if self.running:
            raise RuntimeError("Worker runtime is already running")

        self.running = True
        self._shutdown_event.clear()
        self._loop_task = asyncio.create_task(self._loop())
        logger.info(
            f"Worker runtime started (types={sorted(self.handlers)}, "
            f"poll_interval={self.poll_interval}s, max_concurrent={self.max_concurrent})"
        )

    async def stop(self, drain_timeout: float = 30.0):
        self.running = False
        self._shutdown_event.set()

        if self._loop_task:
            await self._loop_task
            self._loop_task = None

        # Wait for active jobs to complete (with timeout)
        if self._tasks:
            _, pending = await asyncio.wait(set(self._tasks), timeout=drain_timeout)
            if pending:
                logger.warning(f"Worker runtime stopped with {len(pending)} job(s) still running")

        logger.info("Worker runtime stopped.")

    async def _loop(self):
        while self.running:
            try:
                await self.tick()
            except Exception as e:
                # Store outages and the like must not kill the loop
                logger.error(f"Error in worker loop: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

    async def tick(self) -> Optional[JobDomain]:
        """
        One scheduling step. Returns the leased job, if any.
        Exposed so callers (and tests) can drive the runtime deterministically.
        """
        if len(self.in_flight) >= self.max_concurrent:
            return None

        job = await self.queue.dequeue(list(self.handlers))
        if not job:
            return None

        self.in_flight.add(job.id)
        JOBS_INFLIGHT.set(len(self.in_flight))

        handler = self.handlers.get(job.type)
        if handler is None:
            # Retrying cannot help until the handler map changes
            try:
                await self.queue.fail(job.id, f"No handler for job type: {job.type}", terminal=True)
            finally:
                self._release(job.id)
            return job

        task = asyncio.create_task(self._run(job, handler))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return job

    async def _run(self, job: JobDomain, handler: Handler):
        try:
            await self.queue.process_job(job, handler)
        except Exception as e:
            logger.error(f"Job {job.id} ({job.type}) failed: {type(e).__name__}: {e}")
        finally:
            self._release(job.id)

    def _release(self, job_id: UUID):
        self.in_flight.discard(job_id)
        JOBS_INFLIGHT.set(len(self.in_flight))

    async def drain(self):
        """Waits for every handler task spawned so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
