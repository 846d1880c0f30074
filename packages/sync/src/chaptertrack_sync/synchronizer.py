"""Chapter synchronizer.

Folds a scraped chapter list for one series source into logical chapters and
source links. Each chapter is written in its own short transaction so one bad
row never blocks the rest of the batch; series-level bookkeeping runs after
the batch outside any transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Protocol
from uuid import UUID

from chaptertrack_common import SyncError, get_logger
from chaptertrack_contracts import ActivityEventType, ChapterType, ScrapedChapter, ScrapedSeries, SeriesSource
from chaptertrack_storage import (
    ChapterStore,
    LegacyChapterStore,
    SeriesSourceStore,
    SeriesStore,
    get_connection_pool,
)

from chaptertrack_sync.covers import update_series_best_cover
from chaptertrack_sync.normalizer import chapter_key, normalize

logger = get_logger(__name__)

CHAPTER_TX_TIMEOUT = "30s"


class ScraperAdapter(Protocol):
    """Provider-specific scraper. Fetching and parsing live outside this package."""

    source_name: str

    async def scrape_series(self, source_id: str) -> ScrapedSeries: ...


class ActivityRecorder(Protocol):
    """Subset of the activity engine the synchronizer depends on."""

    async def record_event(
        self,
        series_id: UUID,
        event_type: ActivityEventType,
        *,
        source_name: Optional[str] = None,
        chapter_id: Optional[UUID] = None,
        refresh: bool = True,
    ) -> None: ...

    async def refresh_activity_score(self, series_id: UUID) -> Optional[float]: ...


@dataclass
class SyncOptions:
    force_update: bool = False
    skip_legacy: bool = False


@dataclass
class _ChapterResult:
    chapter_id: UUID
    chapter_created: bool
    link_created: bool
    # None for specials, extras and unnumbered chapters
    main_number: Optional[Decimal]


@dataclass
class ChapterSynchronizer:
    """Writes scraped chapters for a series source.

    Args:
        activity: Activity engine used to record chapter events
        clock: Time source (UTC)
    """

    activity: Optional[ActivityRecorder] = None
    clock: Callable[[], datetime] = field(default=lambda: datetime.now(timezone.utc))

    async def sync_chapters(
        self,
        series_id: UUID,
        source_id: str,
        source_name: str,
        raw_chapters: list[ScrapedChapter],
        options: Optional[SyncOptions] = None,
    ) -> int:
        """Upsert chapters of one source and return how many were written.

        Raises:
            SyncError: If the series source does not exist
        """
        options = options or SyncOptions()
        series_source = await SeriesSourceStore.get_by_source(source_name, source_id)
        if series_source is None:
            raise SyncError(f"Series source not found: {source_name}/{source_id}")

        pool = await get_connection_pool()
        synced = 0
        max_number: Optional[Decimal] = None

        for raw in raw_chapters:
            try:
                result = await self._sync_one(pool, series_id, series_source, raw, options)
            except Exception as e:
                logger.error(
                    "chapter_sync_failed",
                    series_id=str(series_id),
                    source=source_name,
                    label=raw.label[:50],
                    error=str(e),
                )
                continue

            synced += 1
            if result.main_number is not None and (max_number is None or result.main_number > max_number):
                max_number = result.main_number
            await self._record_chapter_event(series_id, source_name, result)

        await self._finish_batch(series_id, series_source, max_number)

        logger.info(
            "chapters_synced",
            series_id=str(series_id),
            source=source_name,
            received=len(raw_chapters),
            synced=synced,
        )
        return synced

    async def _sync_one(
        self,
        pool,
        series_id: UUID,
        series_source: SeriesSource,
        raw: ScrapedChapter,
        options: SyncOptions,
    ) -> _ChapterResult:
        label = raw.label or (f"Chapter {raw.number}" if raw.number else "")
        normalized = normalize(label, raw.title)
        key = chapter_key(normalized)

        async with pool.acquire() as conn:
            async with conn.transaction(isolation="read_committed"):
                await conn.execute(f"SET LOCAL statement_timeout = '{CHAPTER_TX_TIMEOUT}'")

                chapter_id, created = await ChapterStore.upsert_logical(
                    conn,
                    series_id,
                    key,
                    normalized.slug,
                    title=raw.title,
                    published_at=raw.published_at,
                    force_update=options.force_update,
                )
                link_created = await ChapterStore.upsert_source_link(
                    conn,
                    chapter_id,
                    series_source.id,
                    series_source.source_name,
                    raw.url,
                    published_at=raw.published_at,
                )
                if not options.skip_legacy:
                    await LegacyChapterStore.upsert(
                        conn,
                        series_source.id,
                        key,
                        normalized.number,
                        raw.url,
                        title=raw.title,
                        published_at=raw.published_at,
                    )

        main_number = normalized.number if normalized.type is ChapterType.NORMAL else None
        return _ChapterResult(chapter_id, created, link_created, main_number)

    async def _record_chapter_event(self, series_id: UUID, source_name: str, result: _ChapterResult) -> None:
        if self.activity is None:
            return
        if result.chapter_created:
            event_type = ActivityEventType.CHAPTER_DETECTED
        elif result.link_created:
            event_type = ActivityEventType.CHAPTER_SOURCE_ADDED
        else:
            return

        try:
            await self.activity.record_event(
                series_id,
                event_type,
                source_name=source_name,
                chapter_id=result.chapter_id,
                refresh=False,
            )
        except Exception as e:
            logger.error(
                "chapter_event_record_failed",
                series_id=str(series_id),
                event_type=event_type.value,
                error=str(e),
            )

    async def _finish_batch(
        self, series_id: UUID, series_source: SeriesSource, max_number: Optional[Decimal]
    ) -> None:
        now = self.clock()

        try:
            await SeriesSourceStore.mark_success(series_source.id, now)
        except Exception as e:
            logger.error("series_source_update_failed", series_source_id=str(series_source.id), error=str(e))

        if max_number is not None:
            try:
                advanced = await SeriesStore.advance_latest_chapter(series_id, max_number, now)
                if advanced:
                    logger.info("series_latest_chapter_advanced", series_id=str(series_id), chapter=str(max_number))
            except Exception as e:
                logger.error("series_latest_chapter_update_failed", series_id=str(series_id), error=str(e))

        try:
            await update_series_best_cover(series_id)
        except Exception as e:
            logger.error("series_cover_refresh_failed", series_id=str(series_id), error=str(e))

        if self.activity is not None:
            try:
                await self.activity.refresh_activity_score(series_id)
            except Exception as e:
                logger.error("series_activity_refresh_failed", series_id=str(series_id), error=str(e))

    async def sync_from_adapter(self, adapter: ScraperAdapter, series_source: SeriesSource) -> int:
        """Scrape one source and sync its chapters.

        Scrape failures count against the source and propagate.

        Raises:
            SyncError: If the source is unlinked or scraping fails
        """
        if series_source.series_id is None:
            raise SyncError(f"Series source {series_source.id} is not linked to a series")

        try:
            scraped = await adapter.scrape_series(series_source.source_id)
        except Exception as e:
            await SeriesSourceStore.mark_failure(series_source.id, self.clock())
            logger.error(
                "series_scrape_failed",
                source=series_source.source_name,
                source_id=series_source.source_id,
                error=str(e),
            )
            raise SyncError(f"Scrape failed for {series_source.source_name}/{series_source.source_id}: {e}") from e

        return await self.sync_chapters(
            series_source.series_id,
            series_source.source_id,
            series_source.source_name,
            scraped.chapters,
        )
