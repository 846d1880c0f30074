"""Job handlers for the worker queues.

Queues:
    series-resolution: resolve, recover (metadata resolver)
    chapter-sync: sync-source (scraper adapter -> synchronizer)
    activity: record-event, search-impressions (activity engine)
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from chaptertrack_activity import ActivityEngine, ImpressionBuffer
from chaptertrack_common import SyncError, get_logger
from chaptertrack_contracts import ActivityEventType, Job
from chaptertrack_resolver import MetadataResolver, ResolutionResult
from chaptertrack_resolver.jobs import RECOVER_JOB, RESOLVE_JOB
from chaptertrack_storage import QueueStore, SeriesSourceStore
from chaptertrack_sync import ChapterSynchronizer, ScraperAdapter

from chaptertrack_worker.metrics import CHAPTERS_SYNCED, RESOLUTION_OUTCOMES
from chaptertrack_worker.runner import Handler

logger = get_logger(__name__)

SYNC_QUEUE = "chapter-sync"
SYNC_JOB = "sync-source"
ACTIVITY_QUEUE = "activity"
RECORD_EVENT_JOB = "record-event"
IMPRESSIONS_JOB = "search-impressions"


def _entry_id(job: Job) -> UUID:
    return UUID(job.payload["library_entry_id"])


def resolution_handlers(resolver: MetadataResolver) -> dict[str, Handler]:
    async def resolve(job: Job) -> ResolutionResult:
        result = await resolver.resolve(_entry_id(job))
        RESOLUTION_OUTCOMES.labels(outcome=result.outcome.value).inc()
        return result

    async def recover(job: Job) -> ResolutionResult:
        result = await resolver.recover(_entry_id(job))
        RESOLUTION_OUTCOMES.labels(outcome=result.outcome.value).inc()
        return result

    return {RESOLVE_JOB: resolve, RECOVER_JOB: recover}


def resolution_exhausted_hook(resolver: MetadataResolver):
    """Mark the entry failed when the queue gives up on a resolve or recover job.

    A recovery that errors after resetting the entry would otherwise leave it
    pending, where healing never looks.
    """

    async def hook(job: Job, error: str) -> None:
        if job.name in (RESOLVE_JOB, RECOVER_JOB):
            await resolver.mark_exhausted(_entry_id(job), error)

    return hook


def sync_handlers(synchronizer: ChapterSynchronizer, adapters: dict[str, ScraperAdapter]) -> dict[str, Handler]:
    async def sync_source(job: Job) -> int:
        source_name = job.payload["source_name"]
        source_id = job.payload["source_id"]

        adapter = adapters.get(source_name)
        if adapter is None:
            raise SyncError(f"No scraper adapter registered for {source_name}")

        series_source = await SeriesSourceStore.get_by_source(source_name, source_id)
        if series_source is None:
            raise SyncError(f"Series source not found: {source_name}/{source_id}")

        synced = await synchronizer.sync_from_adapter(adapter, series_source)
        CHAPTERS_SYNCED.labels(source=source_name).inc(synced)
        return synced

    return {SYNC_JOB: sync_source}


def activity_handlers(engine: ActivityEngine, impressions: ImpressionBuffer) -> dict[str, Handler]:
    async def record_event(job: Job) -> None:
        payload = job.payload
        await engine.record_event(
            UUID(payload["series_id"]),
            ActivityEventType(payload["event_type"]),
            source_name=payload.get("source_name"),
            chapter_id=UUID(payload["chapter_id"]) if payload.get("chapter_id") else None,
            user_id=UUID(payload["user_id"]) if payload.get("user_id") else None,
        )

    async def search_impressions(job: Job) -> None:
        impressions.enqueue(UUID(s) for s in job.payload.get("series_ids", []))

    return {RECORD_EVENT_JOB: record_event, IMPRESSIONS_JOB: search_impressions}


async def enqueue_sync(source_name: str, source_id: str, *, now: Optional[datetime] = None) -> bool:
    """Queue a scrape-and-sync of one source listing. No-op while one is pending."""
    return await QueueStore.add(
        f"sync-{source_name}-{source_id}",
        SYNC_QUEUE,
        SYNC_JOB,
        {"source_name": source_name, "source_id": source_id},
        max_attempts=3,
        backoff_seconds=30.0,
        now=now,
    )
