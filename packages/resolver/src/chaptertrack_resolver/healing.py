"""Periodic re-enqueue of entries that failed to resolve."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from chaptertrack_common import Settings, get_logger, get_settings
from chaptertrack_storage import LibraryStore

from chaptertrack_resolver.jobs import HEALING_PRIORITY, enqueue_resolution

logger = get_logger(__name__)


async def run_metadata_healing(settings: Optional[Settings] = None, now: Optional[datetime] = None) -> int:
    """Enqueue resolution for unavailable/failed entries that are due again.

    Protected entries and entries over ``healing_max_retries`` are skipped.

    Returns:
        Number of jobs actually enqueued
    """
    settings = settings or get_settings()
    now = now or datetime.now(timezone.utc)
    attempted_before = now - timedelta(hours=settings.healing_min_age_hours)

    entry_ids = await LibraryStore.list_healing_candidates(
        attempted_before,
        settings.healing_max_retries,
        settings.healing_batch_size,
    )

    enqueued = 0
    for entry_id in entry_ids:
        if await enqueue_resolution(entry_id, priority=HEALING_PRIORITY, settings=settings, now=now):
            enqueued += 1

    logger.info("metadata_healing_run", candidates=len(entry_ids), enqueued=enqueued)
    return enqueued
