"""ChapterStore - logical chapters and their per-source links.

Provides:
- Find-or-create logical chapters by canonical key
- Upsert chapter source links
- Duplicate cleanup helpers (link transfer, renumbering, soft delete)
- LegacyChapterStore for the per-source chapter table

Soft-deleted chapters (``deleted_at`` set) are filtered here; callers never
repeat the predicate.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import asyncpg
from chaptertrack_common import StorageError, get_logger
from chaptertrack_contracts import LogicalChapter

from chaptertrack_storage.connection import get_connection_pool

logger = get_logger(__name__)

LIVE = "deleted_at IS NULL"


class ChapterStore:
    """Storage operations for logical_chapters and chapter_sources."""

    @staticmethod
    async def upsert_logical(
        conn: asyncpg.Connection,
        series_id: UUID,
        chapter_number: str,
        slug: str,
        title: Optional[str] = None,
        published_at: Optional[datetime] = None,
        force_update: bool = False,
    ) -> tuple[UUID, bool]:
        """Find or create the live chapter for ``(series_id, chapter_number)``.

        Existing rows keep their title/published_at unless the new value is
        non-null, or ``force_update`` is set.

        Returns:
            Tuple of (chapter id, created)
        """
        if force_update:
            update = "title = EXCLUDED.title, published_at = EXCLUDED.published_at"
        else:
            update = (
                "title = COALESCE(EXCLUDED.title, logical_chapters.title), "
                "published_at = COALESCE(EXCLUDED.published_at, logical_chapters.published_at)"
            )

        try:
            row = await conn.fetchrow(
                f"""
                INSERT INTO logical_chapters (series_id, chapter_number, slug, title, published_at)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (series_id, chapter_number) WHERE {LIVE}
                DO UPDATE SET {update}, slug = EXCLUDED.slug
                RETURNING id, (xmax = 0) AS created
                """,
                series_id,
                chapter_number,
                slug,
                title,
                published_at,
            )
            return row["id"], bool(row["created"])

        except Exception as e:
            logger.error(
                "logical_chapter_upsert_failed",
                series_id=str(series_id),
                chapter_number=chapter_number,
                error=str(e),
            )
            raise StorageError(f"Failed to upsert chapter {chapter_number}: {e}") from e

    @staticmethod
    async def upsert_source_link(
        conn: asyncpg.Connection,
        logical_chapter_id: UUID,
        source_id: UUID,
        source_name: str,
        source_url: str,
        published_at: Optional[datetime] = None,
    ) -> bool:
        """Attach a provider's copy to a logical chapter.

        Returns:
            True if the link was newly created
        """
        try:
            created = await conn.fetchval(
                """
                INSERT INTO chapter_sources (
                    logical_chapter_id, source_id, source_name, source_url, published_at
                ) VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (source_id, logical_chapter_id)
                DO UPDATE SET
                    source_url = EXCLUDED.source_url,
                    published_at = COALESCE(EXCLUDED.published_at, chapter_sources.published_at),
                    is_available = TRUE
                RETURNING (xmax = 0) AS created
                """,
                logical_chapter_id,
                source_id,
                source_name,
                source_url,
                published_at,
            )
            return bool(created)

        except Exception as e:
            logger.error(
                "chapter_link_upsert_failed",
                chapter_id=str(logical_chapter_id),
                source_id=str(source_id),
                error=str(e),
            )
            raise StorageError(f"Failed to upsert chapter link: {e}") from e

    @staticmethod
    async def list_live(series_id: UUID) -> list[LogicalChapter]:
        """List live chapters of a series ordered by first sighting."""
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT * FROM logical_chapters
                    WHERE series_id = $1 AND {LIVE}
                    ORDER BY first_seen_at ASC
                    """,
                    series_id,
                )
                return [LogicalChapter.model_validate(dict(row)) for row in rows]

        except Exception as e:
            logger.error("chapter_list_failed", series_id=str(series_id), error=str(e))
            raise StorageError(f"Failed to list chapters: {e}") from e

    @staticmethod
    async def list_live_with_link_counts(
        conn: asyncpg.Connection, series_id: UUID
    ) -> list[dict[str, Any]]:
        """Live chapters of a series with their source-link counts.

        Returns:
            Dicts with chapter columns plus ``link_count``
        """
        rows = await conn.fetch(
            f"""
            SELECT lc.*, COUNT(cs.id) AS link_count
            FROM logical_chapters lc
            LEFT JOIN chapter_sources cs ON cs.logical_chapter_id = lc.id
            WHERE lc.series_id = $1 AND lc.{LIVE}
            GROUP BY lc.id
            ORDER BY lc.first_seen_at ASC
            """,
            series_id,
        )
        return [dict(row) for row in rows]

    @staticmethod
    async def transfer_links(conn: asyncpg.Connection, from_chapter_id: UUID, to_chapter_id: UUID) -> int:
        """Move links to another chapter, skipping sources it already has.

        Returns:
            Number of links moved
        """
        result = await conn.execute(
            """
            UPDATE chapter_sources cs
            SET logical_chapter_id = $2
            WHERE cs.logical_chapter_id = $1
            AND NOT EXISTS (
                SELECT 1 FROM chapter_sources t
                WHERE t.logical_chapter_id = $2 AND t.source_id = cs.source_id
            )
            """,
            from_chapter_id,
            to_chapter_id,
        )
        return int(result.split()[-1]) if result else 0

    @staticmethod
    async def key_in_use(
        conn: asyncpg.Connection, series_id: UUID, chapter_number: str, exclude_id: UUID
    ) -> bool:
        """Whether another live chapter already owns ``chapter_number``."""
        found = await conn.fetchval(
            f"""
            SELECT EXISTS (
                SELECT 1 FROM logical_chapters
                WHERE series_id = $1 AND chapter_number = $2 AND id <> $3 AND {LIVE}
            )
            """,
            series_id,
            chapter_number,
            exclude_id,
        )
        return bool(found)

    @staticmethod
    async def renumber(conn: asyncpg.Connection, chapter_id: UUID, chapter_number: str, slug: str) -> None:
        await conn.execute(
            "UPDATE logical_chapters SET chapter_number = $2, slug = $3 WHERE id = $1",
            chapter_id,
            chapter_number,
            slug,
        )

    @staticmethod
    async def soft_delete(conn: asyncpg.Connection, chapter_id: UUID, now: datetime) -> None:
        await conn.execute(
            f"UPDATE logical_chapters SET deleted_at = $2 WHERE id = $1 AND {LIVE}",
            chapter_id,
            now,
        )


class LegacyChapterStore:
    """Per-source chapter rows kept in step with logical chapters.

    Rows are keyed like logical chapters, so "Chapter 5" and "Extra 5" from
    one source stay separate rows.
    """

    # Decimal column cannot hold NULL
    NO_NUMBER_SENTINEL = Decimal("-1")

    @staticmethod
    async def upsert(
        conn: asyncpg.Connection,
        series_source_id: UUID,
        chapter_key: str,
        chapter_number: Optional[Decimal],
        url: str,
        title: Optional[str] = None,
        published_at: Optional[datetime] = None,
    ) -> None:
        number = chapter_number if chapter_number is not None else LegacyChapterStore.NO_NUMBER_SENTINEL

        try:
            await conn.execute(
                """
                INSERT INTO legacy_chapters (series_source_id, chapter_key, chapter_number, title, url, published_at)
                VALUES ($1, $2, $3, $4, $5, $6)
                ON CONFLICT (series_source_id, chapter_key)
                DO UPDATE SET
                    title = COALESCE(EXCLUDED.title, legacy_chapters.title),
                    url = EXCLUDED.url,
                    published_at = COALESCE(EXCLUDED.published_at, legacy_chapters.published_at)
                """,
                series_source_id,
                chapter_key,
                number,
                title,
                url,
                published_at,
            )

        except Exception as e:
            logger.error(
                "legacy_chapter_upsert_failed",
                series_source_id=str(series_source_id),
                chapter_key=chapter_key,
                error=str(e),
            )
            raise StorageError(f"Failed to upsert legacy chapter: {e}") from e
