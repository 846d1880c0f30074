"""Periodic maintenance tasks run alongside the queue consumers."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

from chaptertrack_activity import ActivityEngine
from chaptertrack_common import Settings, get_logger
from chaptertrack_resolver import run_metadata_healing
from chaptertrack_storage import QueueStore

from chaptertrack_worker.metrics import SCHEDULED_TASK_RUNS, STALLED_JOBS_RECOVERED

logger = get_logger(__name__)

STALLED_AFTER = timedelta(minutes=10)
STALL_CHECK_INTERVAL_SECONDS = 60.0
CLEANUP_INTERVAL_SECONDS = 3600.0
FINISHED_JOB_RETENTION_DAYS = 7


@dataclass
class PeriodicTask:
    name: str
    interval_seconds: float
    func: Callable[[], Awaitable[Any]]
    run_immediately: bool = False


async def run_periodic(task: PeriodicTask, stop_event: asyncio.Event) -> None:
    """Run ``task.func`` every ``interval_seconds`` until stopped.

    Failures are logged and counted; the next run proceeds on schedule.
    """
    first = True
    while not stop_event.is_set():
        if not (first and task.run_immediately):
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=task.interval_seconds)
                break
            except asyncio.TimeoutError:
                pass
        first = False

        try:
            result = await task.func()
            SCHEDULED_TASK_RUNS.labels(task=task.name, status="success").inc()
            logger.info("scheduled_task_completed", task=task.name, result=str(result))
        except Exception as e:
            SCHEDULED_TASK_RUNS.labels(task=task.name, status="error").inc()
            logger.error("scheduled_task_failed", task=task.name, error=str(e))


async def recover_stalled_jobs(now: Optional[datetime] = None) -> int:
    now = now or datetime.now(timezone.utc)
    recovered = await QueueStore.recover_stalled(now - STALLED_AFTER)
    if recovered:
        STALLED_JOBS_RECOVERED.inc(recovered)
    return recovered


def maintenance_tasks(settings: Settings, engine: ActivityEngine) -> list[PeriodicTask]:
    """Demotion check, metadata healing, stalled-job recovery and queue cleanup."""
    return [
        PeriodicTask("tier_demotion", settings.demotion_interval_seconds, engine.run_tier_demotion_check),
        PeriodicTask("metadata_healing", settings.healing_interval_seconds, lambda: run_metadata_healing(settings)),
        PeriodicTask("stalled_jobs", STALL_CHECK_INTERVAL_SECONDS, recover_stalled_jobs, run_immediately=True),
        PeriodicTask(
            "queue_cleanup",
            CLEANUP_INTERVAL_SECONDS,
            lambda: QueueStore.delete_finished(FINISHED_JOB_RETENTION_DAYS),
        ),
    ]
