"""Resolution and recovery job scheduling."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from chaptertrack_common import Settings, get_logger, get_settings
from chaptertrack_storage import QueueStore

logger = get_logger(__name__)

RESOLUTION_QUEUE = "series-resolution"
RESOLVE_JOB = "resolve"
RECOVER_JOB = "recover"

# Delay before retrying an unavailable entry, indexed by attempt (capped)
RECOVERY_DELAYS_DAYS = (1, 3, 7)
RECOVERY_PRIORITY = 5
HEALING_PRIORITY = 3


def resolution_job_id(entry_id: UUID) -> str:
    return f"resolution-{entry_id}"


def recovery_job_id(entry_id: UUID, retry_count: int) -> str:
    # One id per attempt; the running recovery job still holds the previous one
    return f"recovery-{entry_id}-{retry_count}"


def recovery_delay(retry_count: int) -> timedelta:
    """Delay for the next recovery attempt.

    Example:
        >>> recovery_delay(2)
        datetime.timedelta(days=3)
    """
    index = min(max(retry_count, 1) - 1, len(RECOVERY_DELAYS_DAYS) - 1)
    return timedelta(days=RECOVERY_DELAYS_DAYS[index])


async def enqueue_resolution(
    entry_id: UUID,
    *,
    priority: int = 0,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> bool:
    """Enqueue a resolution job. No-op while one is waiting, delayed or active.

    Returns:
        True if a job was added
    """
    settings = settings or get_settings()
    return await QueueStore.add(
        resolution_job_id(entry_id),
        RESOLUTION_QUEUE,
        RESOLVE_JOB,
        {"library_entry_id": str(entry_id)},
        priority=priority,
        max_attempts=settings.resolution_max_attempts,
        backoff_seconds=settings.resolution_backoff_seconds,
        now=now,
    )


async def schedule_recovery(
    entry_id: UUID,
    retry_count: int,
    now: Optional[datetime] = None,
    *,
    settings: Optional[Settings] = None,
) -> datetime:
    """Schedule the recovery job for an unavailable entry.

    Recovery jobs share the resolution retry policy, so a transient failure
    is retried with backoff and an exhausted one marks the entry failed.

    Returns:
        When the recovery job will run
    """
    settings = settings or get_settings()
    now = now or datetime.now(timezone.utc)
    delay = recovery_delay(retry_count)
    job_id = recovery_job_id(entry_id, retry_count)
    added = await QueueStore.add(
        job_id,
        RESOLUTION_QUEUE,
        RECOVER_JOB,
        {"library_entry_id": str(entry_id)},
        priority=RECOVERY_PRIORITY,
        max_attempts=settings.resolution_max_attempts,
        backoff_seconds=settings.resolution_backoff_seconds,
        delay_seconds=delay.total_seconds(),
        now=now,
    )
    run_at = now + delay
    if not added:
        logger.warning("recovery_already_scheduled", entry_id=str(entry_id), job_id=job_id)
        return run_at
    logger.info("recovery_scheduled", entry_id=str(entry_id), retry_count=retry_count, run_at=run_at.isoformat())
    return run_at
