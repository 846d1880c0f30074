"""Batched search-impression recording.

Search results can mention the same series thousands of times a minute.
Impressions are counted in memory and written as one batch per flush, with a
single score refresh per affected series.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional
from uuid import UUID

from chaptertrack_common import get_logger
from chaptertrack_contracts import ActivityEvent, ActivityEventType
from chaptertrack_storage import ActivityStore, SeriesStore, run_serializable

from chaptertrack_activity.engine import ActivityEngine
from chaptertrack_activity.scoring import event_weight

logger = get_logger(__name__)

REFRESH_CONCURRENCY = 5


class ImpressionBuffer:
    """Process-local impression counter with periodic flush.

    Args:
        engine: Activity engine used for per-series refresh
        flush_interval: Seconds between flushes in :meth:`run`
        clock: Time source (UTC)
    """

    def __init__(
        self,
        engine: ActivityEngine,
        flush_interval: float = 10.0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.engine = engine
        self.flush_interval = flush_interval
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._counts: Counter[UUID] = Counter()
        self._lock = asyncio.Lock()

    @property
    def pending(self) -> int:
        """Total impressions waiting to be flushed."""
        return sum(self._counts.values())

    def enqueue(self, series_ids: Iterable[UUID]) -> None:
        for series_id in series_ids:
            self._counts[series_id] += 1

    async def flush(self) -> int:
        """Write buffered impressions.

        The event batch and the activity stamp commit together. On failure
        nothing is written, the drained counts are merged back so the next
        flush retries them, and the error propagates.

        Returns:
            Number of series flushed
        """
        async with self._lock:
            if not self._counts:
                return 0
            drained, self._counts = self._counts, Counter()

            now = self.clock()
            weight = event_weight(ActivityEventType.SEARCH_IMPRESSION)
            events = [
                ActivityEvent(
                    series_id=series_id,
                    event_type=ActivityEventType.SEARCH_IMPRESSION,
                    weight=weight * count,
                    occurred_at=now,
                )
                for series_id, count in drained.items()
            ]

            async def write(conn):
                await ActivityStore.insert_batch(events, conn=conn)
                await SeriesStore.touch_activity(list(drained), now, conn=conn)

            try:
                await run_serializable(write, isolation="read_committed")
            except Exception as e:
                self._counts.update(drained)
                logger.error("impression_flush_failed", series=len(drained), error=str(e))
                raise

        await self._refresh_all(list(drained))
        logger.info("impressions_flushed", series=len(drained), impressions=sum(drained.values()))
        return len(drained)

    async def _refresh_all(self, series_ids: list[UUID]) -> None:
        semaphore = asyncio.Semaphore(REFRESH_CONCURRENCY)

        async def refresh(series_id: UUID) -> None:
            async with semaphore:
                try:
                    await self.engine.refresh_activity_score(series_id)
                except Exception as e:
                    logger.error("impression_refresh_failed", series_id=str(series_id), error=str(e))

        await asyncio.gather(*(refresh(s) for s in series_ids))

    async def run(self, stop_event: asyncio.Event) -> None:
        """Flush every ``flush_interval`` seconds until ``stop_event`` is set, then flush once more."""
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.flush_interval)
            except asyncio.TimeoutError:
                pass
            try:
                await self.flush()
            except Exception as e:
                logger.warning("impression_flush_deferred", error=str(e))

        try:
            await self.flush()
        except Exception as e:
            logger.error("impression_final_flush_failed", pending=self.pending, error=str(e))
