"""SeriesSourceStore - one provider's listing of a series."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

import asyncpg
from chaptertrack_common import StorageError, get_logger
from chaptertrack_contracts import SeriesSource

from chaptertrack_storage.connection import get_connection_pool

logger = get_logger(__name__)


class SeriesSourceStore:
    """Storage operations for series_sources."""

    @staticmethod
    async def get_by_source(source_name: str, source_id: str) -> Optional[SeriesSource]:
        """Look up a listing by provider name and provider-side id."""
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT * FROM series_sources WHERE source_name = $1 AND source_id = $2",
                    source_name,
                    source_id,
                )
                return SeriesSource.model_validate(dict(row)) if row else None

        except Exception as e:
            logger.error(
                "series_source_get_failed",
                source_name=source_name,
                source_id=source_id,
                error=str(e),
            )
            raise StorageError(f"Failed to get series source: {e}") from e

    @staticmethod
    async def list_for_series(series_id: UUID) -> list[SeriesSource]:
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    "SELECT * FROM series_sources WHERE series_id = $1",
                    series_id,
                )
                return [SeriesSource.model_validate(dict(row)) for row in rows]

        except Exception as e:
            logger.error("series_source_list_failed", series_id=str(series_id), error=str(e))
            raise StorageError(f"Failed to list series sources: {e}") from e

    @staticmethod
    async def mark_success(series_source_id: UUID, now: datetime) -> None:
        """Record a successful sync: stamp both timestamps and clear failures."""
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    UPDATE series_sources
                    SET last_success_at = $2, last_checked_at = $2, failure_count = 0, updated_at = $2
                    WHERE id = $1
                    """,
                    series_source_id,
                    now,
                )

        except Exception as e:
            logger.error("series_source_success_failed", id=str(series_source_id), error=str(e))
            raise StorageError(f"Failed to mark series source success: {e}") from e

    @staticmethod
    async def mark_failure(series_source_id: UUID, now: datetime) -> None:
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    UPDATE series_sources
                    SET last_checked_at = $2, failure_count = failure_count + 1, updated_at = $2
                    WHERE id = $1
                    """,
                    series_source_id,
                    now,
                )

        except Exception as e:
            logger.error("series_source_failure_failed", id=str(series_source_id), error=str(e))
            raise StorageError(f"Failed to mark series source failure: {e}") from e

    @staticmethod
    async def relink_by_url(conn: asyncpg.Connection, source_url: str, series_id: UUID) -> int:
        """Point the listing with ``source_url`` at ``series_id``.

        Skips rows already linked to the target, rows owned by a user-override
        series, and rows whose provider the target series already carries.

        Returns:
            Number of rows relinked
        """
        result = await conn.execute(
            """
            UPDATE series_sources ss
            SET series_id = $2, updated_at = NOW()
            WHERE ss.source_url = $1
            AND ss.series_id IS DISTINCT FROM $2
            AND NOT EXISTS (
                SELECT 1 FROM series s
                WHERE s.id = ss.series_id AND s.metadata_source = 'USER_OVERRIDE'
            )
            AND NOT EXISTS (
                SELECT 1 FROM series_sources t
                WHERE t.series_id = $2 AND t.source_name = ss.source_name
            )
            """,
            source_url,
            series_id,
        )
        relinked = int(result.split()[-1]) if result else 0
        if relinked:
            logger.info("series_source_relinked", series_id=str(series_id), rows=relinked)
        return relinked
