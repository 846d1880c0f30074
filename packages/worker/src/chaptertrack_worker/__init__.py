"""chaptertrack worker - queue consumers and maintenance schedulers.

Dependencies: prometheus-client, chaptertrack-resolver, chaptertrack-sync,
chaptertrack-activity.
"""

from chaptertrack_worker.handlers import (
    ACTIVITY_QUEUE,
    SYNC_QUEUE,
    activity_handlers,
    enqueue_sync,
    resolution_exhausted_hook,
    resolution_handlers,
    sync_handlers,
)
from chaptertrack_worker.runner import JobRunner, UnknownJobError
from chaptertrack_worker.scheduler import PeriodicTask, maintenance_tasks, run_periodic

__all__ = [
    "ACTIVITY_QUEUE",
    "SYNC_QUEUE",
    "activity_handlers",
    "enqueue_sync",
    "resolution_exhausted_hook",
    "resolution_handlers",
    "sync_handlers",
    "JobRunner",
    "UnknownJobError",
    "PeriodicTask",
    "maintenance_tasks",
    "run_periodic",
]
