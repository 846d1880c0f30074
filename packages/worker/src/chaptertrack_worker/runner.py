"""Queue consumer.

Claims due jobs from one queue, dispatches them by job name, and settles each
attempt. Exceptions from a handler fail the attempt; the queue decides between
a delayed retry and final failure.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from chaptertrack_common import QueueError, get_logger
from chaptertrack_contracts import Job, JobState
from chaptertrack_resolver.sanitize import sanitize_error
from chaptertrack_storage import QueueStore

from chaptertrack_worker.metrics import JOB_COUNT, JOB_DURATION

logger = get_logger(__name__)

Handler = Callable[[Job], Awaitable[Any]]
ExhaustedHook = Callable[[Job, str], Awaitable[None]]


class UnknownJobError(QueueError):
    """No handler is registered for the job name."""


class JobRunner:
    """Consume one queue with a fixed handler table.

    Args:
        queue: Queue name
        handlers: Job name -> coroutine taking the claimed Job
        batch_size: Jobs claimed per poll
        on_exhausted: Called with (job, error) once the queue gives up on a job
        clock: Time source (UTC)
    """

    def __init__(
        self,
        queue: str,
        handlers: dict[str, Handler],
        *,
        batch_size: int = 5,
        on_exhausted: Optional[ExhaustedHook] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.queue = queue
        self.handlers = handlers
        self.batch_size = batch_size
        self.on_exhausted = on_exhausted
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def run_once(self) -> int:
        """Claim and process one batch.

        Returns:
            Number of jobs claimed
        """
        jobs = await QueueStore.claim(self.queue, limit=self.batch_size, now=self.clock())
        if jobs:
            await asyncio.gather(*(self.process(job) for job in jobs))
        return len(jobs)

    async def process(self, job: Job) -> str:
        """Run a single claimed job and settle it.

        Returns:
            Final status label: "completed", "delayed" or "failed"
        """
        start = time.perf_counter()
        status = "completed"

        try:
            handler = self.handlers.get(job.name)
            if handler is None:
                raise UnknownJobError(f"No handler for job {job.name!r} on queue {self.queue}")
            await handler(job)
            await QueueStore.complete(job.id)
            logger.info("job_completed", job_id=job.id, queue=self.queue, name=job.name)

        except Exception as e:
            error = sanitize_error(str(e) or type(e).__name__)
            logger.warning(
                "job_attempt_failed",
                job_id=job.id,
                queue=self.queue,
                name=job.name,
                attempt=job.attempts_made,
                error=error,
            )
            state = await QueueStore.fail(job, error, now=self.clock())
            status = state.value
            if state is JobState.FAILED and self.on_exhausted is not None:
                try:
                    await self.on_exhausted(job, error)
                except Exception as hook_error:
                    logger.error("job_exhausted_hook_failed", job_id=job.id, error=str(hook_error))

        finally:
            JOB_DURATION.labels(queue=self.queue, name=job.name).observe(time.perf_counter() - start)

        JOB_COUNT.labels(queue=self.queue, name=job.name, status=status).inc()
        return status

    async def run(self, stop_event: asyncio.Event, poll_interval: float = 2.0) -> None:
        """Poll until ``stop_event`` is set. Sleeps only when the queue is idle."""
        logger.info("job_runner_started", queue=self.queue, handlers=sorted(self.handlers))

        while not stop_event.is_set():
            try:
                claimed = await self.run_once()
            except QueueError as e:
                logger.error("job_poll_failed", queue=self.queue, error=str(e))
                claimed = 0

            if claimed == 0:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=poll_interval)
                except asyncio.TimeoutError:
                    pass

        logger.info("job_runner_stopped", queue=self.queue)
