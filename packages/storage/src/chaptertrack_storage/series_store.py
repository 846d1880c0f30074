"""SeriesStore - canonical catalog rows.

The series row has several writers. Each method here updates only the
columns its owner is responsible for:
- synchronizer: latest_chapter, last_chapter_at, best_cover_url
- resolver: bibliographic fields
- activity engine: activity_score, catalog_tier, tier_reason, last_activity_at
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import asyncpg
from chaptertrack_common import StorageError, get_logger
from chaptertrack_contracts import CatalogTier, Series

from chaptertrack_storage.connection import get_connection_pool

logger = get_logger(__name__)

# Columns the resolver may write
METADATA_COLUMNS = (
    "title",
    "alternative_titles",
    "description",
    "status",
    "year",
    "original_language",
    "genres",
    "cover_url",
    "external_id",
    "metadata_source",
    "metadata_confidence",
    "metadata_schema_version",
)

_TOUCH_ACTIVITY = "UPDATE series SET last_activity_at = $2 WHERE id = ANY($1::uuid[])"


class SeriesStore:
    """Storage operations for series."""

    @staticmethod
    async def get(series_id: UUID) -> Optional[Series]:
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow("SELECT * FROM series WHERE id = $1", series_id)
                return Series.model_validate(dict(row)) if row else None

        except Exception as e:
            logger.error("series_get_failed", series_id=str(series_id), error=str(e))
            raise StorageError(f"Failed to get series: {e}") from e

    @staticmethod
    async def get_for_update(conn: asyncpg.Connection, series_id: UUID) -> Optional[Series]:
        row = await conn.fetchrow("SELECT * FROM series WHERE id = $1 FOR UPDATE", series_id)
        return Series.model_validate(dict(row)) if row else None

    @staticmethod
    async def get_by_external_id(conn: asyncpg.Connection, external_id: str) -> Optional[Series]:
        row = await conn.fetchrow(
            "SELECT * FROM series WHERE external_id = $1 FOR UPDATE",
            external_id,
        )
        return Series.model_validate(dict(row)) if row else None

    @staticmethod
    async def create(conn: asyncpg.Connection, fields: dict[str, Any]) -> Series:
        """Insert a series from resolver-owned fields."""
        _check_columns(fields)
        columns = list(fields)
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))

        try:
            row = await conn.fetchrow(
                f"""
                INSERT INTO series ({", ".join(columns)})
                VALUES ({placeholders})
                RETURNING *
                """,
                *[_to_db(fields[c]) for c in columns],
            )
            series = Series.model_validate(dict(row))
            logger.info("series_created", series_id=str(series.id), external_id=series.external_id)
            return series

        except Exception as e:
            logger.error("series_create_failed", title=str(fields.get("title"))[:50], error=str(e))
            raise StorageError(f"Failed to create series: {e}") from e

    @staticmethod
    async def update_metadata(conn: asyncpg.Connection, series_id: UUID, fields: dict[str, Any]) -> None:
        """Write resolver-owned fields. Other columns are never touched."""
        if not fields:
            return
        _check_columns(fields)

        set_clauses = []
        params: list[Any] = [series_id]
        for column, value in fields.items():
            params.append(_to_db(value))
            set_clauses.append(f"{column} = ${len(params)}")

        try:
            await conn.execute(
                f"""
                UPDATE series
                SET {', '.join(set_clauses)}, updated_at = NOW()
                WHERE id = $1
                """,
                *params,
            )

        except Exception as e:
            logger.error("series_metadata_update_failed", series_id=str(series_id), error=str(e))
            raise StorageError(f"Failed to update series metadata: {e}") from e

    @staticmethod
    async def advance_latest_chapter(series_id: UUID, chapter_number: Decimal, at: datetime) -> bool:
        """Raise latest_chapter to ``chapter_number`` if it is higher.

        Returns:
            True if the series advanced
        """
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                result = await conn.execute(
                    """
                    UPDATE series
                    SET latest_chapter = $2, last_chapter_at = $3
                    WHERE id = $1 AND (latest_chapter IS NULL OR latest_chapter < $2)
                    """,
                    series_id,
                    chapter_number,
                    at,
                )
                return result == "UPDATE 1"

        except Exception as e:
            logger.error("series_latest_chapter_failed", series_id=str(series_id), error=str(e))
            raise StorageError(f"Failed to advance latest chapter: {e}") from e

    @staticmethod
    async def set_best_cover(series_id: UUID, cover_url: Optional[str]) -> None:
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    "UPDATE series SET best_cover_url = $2 WHERE id = $1 AND best_cover_url IS DISTINCT FROM $2",
                    series_id,
                    cover_url,
                )

        except Exception as e:
            logger.error("series_cover_update_failed", series_id=str(series_id), error=str(e))
            raise StorageError(f"Failed to set best cover: {e}") from e

    @staticmethod
    async def get_score_inputs(series_id: UUID, recent_since: datetime) -> Optional[dict[str, Any]]:
        """Everything the activity engine needs to score and tier a series.

        Args:
            series_id: Series UUID
            recent_since: Chapters first seen at or after this count as recent

        Returns:
            Dict with follows, weekly readers, library count, summed event
            weight, timestamps, current tier and curated/recent flags
        """
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT
                        s.id,
                        s.total_follows,
                        s.weekly_readers,
                        s.last_chapter_at,
                        s.last_activity_at,
                        s.created_at,
                        s.catalog_tier,
                        s.activity_score,
                        (SELECT COALESCE(SUM(e.weight), 0) FROM activity_events e
                         WHERE e.series_id = s.id) AS event_weight,
                        (SELECT COUNT(*) FROM library_entries le
                         WHERE le.series_id = s.id AND le.deleted_at IS NULL) AS library_count,
                        EXISTS (
                            SELECT 1 FROM logical_chapters lc
                            WHERE lc.series_id = s.id AND lc.deleted_at IS NULL
                            AND lc.first_seen_at >= $2
                        ) AS has_recent_chapter,
                        EXISTS (
                            SELECT 1 FROM curated_list_entries ce
                            JOIN curated_lists cl ON cl.id = ce.list_id
                            WHERE ce.series_id = s.id AND cl.is_active
                        ) AS in_curated_list
                    FROM series s
                    WHERE s.id = $1
                    """,
                    series_id,
                    recent_since,
                )
                return dict(row) if row else None

        except Exception as e:
            logger.error("series_score_inputs_failed", series_id=str(series_id), error=str(e))
            raise StorageError(f"Failed to load score inputs: {e}") from e

    @staticmethod
    async def set_activity_score(series_id: UUID, score: float) -> None:
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    "UPDATE series SET activity_score = $2 WHERE id = $1",
                    series_id,
                    score,
                )

        except Exception as e:
            logger.error("series_score_update_failed", series_id=str(series_id), error=str(e))
            raise StorageError(f"Failed to set activity score: {e}") from e

    @staticmethod
    async def set_tier(series_id: UUID, tier: CatalogTier, reason: str, now: datetime) -> None:
        """Write a tier change. Promotions also stamp tier_promoted_at."""
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    UPDATE series
                    SET catalog_tier = $2,
                        tier_reason = $3,
                        tier_promoted_at = CASE WHEN $2 < catalog_tier THEN $4 ELSE tier_promoted_at END
                    WHERE id = $1
                    """,
                    series_id,
                    tier.value,
                    reason,
                    now,
                )

        except Exception as e:
            logger.error("series_tier_update_failed", series_id=str(series_id), error=str(e))
            raise StorageError(f"Failed to set tier: {e}") from e

    @staticmethod
    async def touch_activity(series_ids: list[UUID], at: datetime, conn: Optional[asyncpg.Connection] = None) -> None:
        """Bulk-stamp last_activity_at, on ``conn`` if given."""
        if not series_ids:
            return

        try:
            if conn is not None:
                await conn.execute(_TOUCH_ACTIVITY, series_ids, at)
                return
            pool = await get_connection_pool()
            async with pool.acquire() as pooled:
                await pooled.execute(_TOUCH_ACTIVITY, series_ids, at)

        except Exception as e:
            logger.error("series_touch_activity_failed", count=len(series_ids), error=str(e))
            raise StorageError(f"Failed to update last activity: {e}") from e

    @staticmethod
    async def list_stale_scored(inactive_since: datetime) -> list[UUID]:
        """Series with score or tier to lose whose activity predates ``inactive_since``."""
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT id FROM series
                    WHERE COALESCE(last_activity_at, created_at) < $1
                    AND (activity_score > 0 OR catalog_tier IN ('A', 'B'))
                    """,
                    inactive_since,
                )
                return [row["id"] for row in rows]

        except Exception as e:
            logger.error("series_stale_list_failed", error=str(e))
            raise StorageError(f"Failed to list stale series: {e}") from e

    @staticmethod
    async def demote_inactive_tier_a(inactive_since: datetime, reason: str) -> list[UUID]:
        """Move tier A series with no activity since ``inactive_since`` to B.

        Series on an active curated list keep tier A.

        Returns:
            Demoted series ids
        """
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    UPDATE series s
                    SET catalog_tier = 'B', tier_reason = $2
                    WHERE s.catalog_tier = 'A'
                    AND COALESCE(s.last_activity_at, s.created_at) < $1
                    AND NOT EXISTS (
                        SELECT 1 FROM curated_list_entries ce
                        JOIN curated_lists cl ON cl.id = ce.list_id
                        WHERE ce.series_id = s.id AND cl.is_active
                    )
                    RETURNING s.id
                    """,
                    inactive_since,
                    reason,
                )
                return [row["id"] for row in rows]

        except Exception as e:
            logger.error("series_demotion_failed", error=str(e))
            raise StorageError(f"Failed to demote tier A series: {e}") from e


def _check_columns(fields: dict[str, Any]) -> None:
    unknown = set(fields) - set(METADATA_COLUMNS)
    if unknown:
        raise StorageError(f"Not resolver-owned series columns: {sorted(unknown)}")


def _to_db(value: Any) -> Any:
    # Enum members are stored by value
    return getattr(value, "value", value)
