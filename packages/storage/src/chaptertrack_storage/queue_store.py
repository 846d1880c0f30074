"""QueueStore - durable job queue on the jobs table.

Jobs carry caller-chosen deterministic ids, so enqueueing the same logical
work twice collapses into one job while it is waiting, delayed or active.
Workers claim due jobs with ``FOR UPDATE SKIP LOCKED``. Failed attempts are
rescheduled with exponential backoff plus jitter until ``max_attempts`` runs
out.
"""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from chaptertrack_common import QueueError, get_logger
from chaptertrack_contracts import Job, JobState

from chaptertrack_storage.connection import get_connection_pool

logger = get_logger(__name__)

# States in which a job id is taken
PENDING_STATES = (JobState.WAITING.value, JobState.DELAYED.value, JobState.ACTIVE.value)


def compute_backoff(
    attempts_made: int,
    base_seconds: float,
    jitter_ratio: float = 0.1,
    rng: Callable[[], float] = random.random,
) -> float:
    """Delay before the next attempt: ``base * 2^(attempts_made - 1)`` plus jitter.

    Args:
        attempts_made: Attempts already made (>= 1)
        base_seconds: Delay after the first failure
        jitter_ratio: Max jitter as a fraction of the delay
        rng: Uniform [0, 1) source
    """
    delay = base_seconds * (2 ** max(attempts_made - 1, 0))
    return delay + delay * jitter_ratio * rng()


class QueueStore:
    """Storage operations for the jobs table."""

    @staticmethod
    async def add(
        job_id: str,
        queue: str,
        name: str,
        payload: Optional[dict[str, Any]] = None,
        priority: int = 0,
        max_attempts: int = 1,
        backoff_seconds: float = 0.0,
        delay_seconds: float = 0.0,
        now: Optional[datetime] = None,
    ) -> bool:
        """Enqueue a job under a deterministic id.

        A job whose id is waiting, delayed or active is
        left alone; a completed or failed one is recycled.

        Args:
            job_id: Deterministic job id (e.g. "resolution-<entry id>")
            queue: Queue name
            name: Job name used for handler dispatch
            payload: JSON payload
            priority: Lower runs first
            max_attempts: Attempts before the job is failed
            backoff_seconds: Base delay for exponential backoff
            delay_seconds: Initial delay

        Returns:
            True if the job was added, False if an equivalent job exists

        Example:
            >>> added = await QueueStore.add(
            ...     "resolution-3f1c...", "series-resolution", "resolve",
            ...     {"library_entry_id": "3f1c..."}, max_attempts=5, backoff_seconds=60,
            ... )
        """
        now = now or datetime.now(timezone.utc)
        run_at = now + timedelta(seconds=delay_seconds)
        state = JobState.DELAYED.value if delay_seconds > 0 else JobState.WAITING.value
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                inserted = await conn.fetchval(
                    """
                    INSERT INTO jobs (
                        id, queue, name, payload, state, priority,
                        attempts_made, max_attempts, backoff_seconds,
                        run_at, created_at, updated_at
                    ) VALUES ($1, $2, $3, $4, $5, $6, 0, $7, $8, $9, $10, $10)
                    ON CONFLICT (id) DO UPDATE SET
                        queue = EXCLUDED.queue,
                        name = EXCLUDED.name,
                        payload = EXCLUDED.payload,
                        state = EXCLUDED.state,
                        priority = EXCLUDED.priority,
                        attempts_made = 0,
                        max_attempts = EXCLUDED.max_attempts,
                        backoff_seconds = EXCLUDED.backoff_seconds,
                        run_at = EXCLUDED.run_at,
                        last_error = NULL,
                        created_at = EXCLUDED.created_at,
                        updated_at = EXCLUDED.updated_at
                    WHERE jobs.state IN ('completed', 'failed')
                    RETURNING id
                    """,
                    job_id,
                    queue,
                    name,
                    payload or {},
                    state,
                    priority,
                    max_attempts,
                    backoff_seconds,
                    run_at,
                    now,
                )

            if inserted is None:
                logger.debug("job_already_pending", job_id=job_id, queue=queue)
                return False

            logger.info("job_added", job_id=job_id, queue=queue, name=name, run_at=run_at.isoformat())
            return True

        except Exception as e:
            logger.error("job_add_failed", job_id=job_id, queue=queue, error=str(e))
            raise QueueError(f"Failed to add job {job_id}: {e}") from e

    @staticmethod
    async def claim(queue: str, limit: int = 1, now: Optional[datetime] = None) -> list[Job]:
        """Claim due jobs, marking them active and counting the attempt.

        Jobs locked by another worker are skipped.
        """
        now = now or datetime.now(timezone.utc)
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    UPDATE jobs
                    SET state = 'active', attempts_made = attempts_made + 1, updated_at = $3
                    WHERE id IN (
                        SELECT id FROM jobs
                        WHERE queue = $1
                        AND state IN ('waiting', 'delayed')
                        AND run_at <= $3
                        ORDER BY priority ASC, run_at ASC
                        LIMIT $2
                        FOR UPDATE SKIP LOCKED
                    )
                    RETURNING *
                    """,
                    queue,
                    limit,
                    now,
                )
                return [Job.model_validate(dict(row)) for row in rows]

        except Exception as e:
            logger.error("job_claim_failed", queue=queue, error=str(e))
            raise QueueError(f"Failed to claim jobs from {queue}: {e}") from e

    @staticmethod
    async def complete(job_id: str) -> None:
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    "UPDATE jobs SET state = 'completed', updated_at = NOW() WHERE id = $1",
                    job_id,
                )

        except Exception as e:
            logger.error("job_complete_failed", job_id=job_id, error=str(e))
            raise QueueError(f"Failed to complete job {job_id}: {e}") from e

    @staticmethod
    async def fail(job: Job, error: str, now: Optional[datetime] = None) -> JobState:
        """Settle a failed attempt.

        Returns:
            DELAYED if the job will be retried, FAILED if attempts are exhausted
        """
        now = now or datetime.now(timezone.utc)
        if job.attempts_made < job.max_attempts:
            state = JobState.DELAYED
            run_at = now + timedelta(seconds=compute_backoff(job.attempts_made, job.backoff_seconds))
        else:
            state = JobState.FAILED
            run_at = job.run_at

        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    UPDATE jobs
                    SET state = $2, run_at = $3, last_error = $4, updated_at = $5
                    WHERE id = $1
                    """,
                    job.id,
                    state.value,
                    run_at,
                    error,
                    now,
                )

            logger.info(
                "job_failed_attempt",
                job_id=job.id,
                attempt=job.attempts_made,
                max_attempts=job.max_attempts,
                next_state=state.value,
            )
            return state

        except Exception as e:
            logger.error("job_fail_update_failed", job_id=job.id, error=str(e))
            raise QueueError(f"Failed to settle job {job.id}: {e}") from e

    @staticmethod
    async def get(job_id: str) -> Optional[Job]:
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow("SELECT * FROM jobs WHERE id = $1", job_id)
                return Job.model_validate(dict(row)) if row else None

        except Exception as e:
            logger.error("job_get_failed", job_id=job_id, error=str(e))
            raise QueueError(f"Failed to get job {job_id}: {e}") from e

    @staticmethod
    async def recover_stalled(stalled_before: datetime) -> int:
        """Return active jobs abandoned by a crashed worker to the waiting state.

        Returns:
            Number of jobs recovered
        """
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                result = await conn.execute(
                    """
                    UPDATE jobs SET state = 'waiting', updated_at = NOW()
                    WHERE state = 'active' AND updated_at < $1
                    """,
                    stalled_before,
                )
                recovered = int(result.split()[-1]) if result else 0
                if recovered:
                    logger.warning("stalled_jobs_recovered", count=recovered)
                return recovered

        except Exception as e:
            logger.error("job_stall_recovery_failed", error=str(e))
            raise QueueError(f"Failed to recover stalled jobs: {e}") from e

    @staticmethod
    async def delete_finished(older_than_days: int = 7) -> int:
        """Delete completed jobs older than the given age."""
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                result = await conn.execute(
                    """
                    DELETE FROM jobs
                    WHERE state = 'completed'
                    AND updated_at < NOW() - make_interval(days => $1)
                    """,
                    older_than_days,
                )
                deleted = int(result.split()[-1]) if result else 0
                if deleted > 0:
                    logger.info("queue_cleanup", deleted=deleted, older_than_days=older_than_days)
                return deleted

        except Exception as e:
            logger.error("queue_cleanup_failed", error=str(e))
            raise QueueError(f"Failed to clean up jobs: {e}") from e

    @staticmethod
    async def get_stats() -> dict[str, dict[str, int]]:
        """Job counts per queue and state.

        Returns:
            {queue: {state: count}}
        """
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT queue, state, COUNT(*) AS count
                    FROM jobs
                    GROUP BY queue, state
                    ORDER BY queue, state
                    """
                )

            stats: dict[str, dict[str, int]] = {}
            for row in rows:
                stats.setdefault(row["queue"], {})[row["state"]] = row["count"]
            return stats

        except Exception as e:
            logger.error("queue_stats_failed", error=str(e))
            raise QueueError(f"Failed to get queue stats: {e}") from e
