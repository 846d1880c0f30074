"""LibraryStore - users' tracked series and their resolution state.

Provides:
- Lookups filtered to live (not soft-deleted) entries
- Per-entry row lock with SKIP LOCKED for the resolver
- State transitions (enriched, unavailable, pending-with-error, failed)
- Candidate selection for metadata healing
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import asyncpg
from chaptertrack_common import StorageError, get_logger
from chaptertrack_contracts import LibraryEntry, MetadataSource, MetadataStatus

from chaptertrack_storage.connection import get_connection_pool

logger = get_logger(__name__)

LIVE = "deleted_at IS NULL"

# Entries that automation must not touch
UNPROTECTED = "manually_linked = FALSE AND manual_override_at IS NULL"


class LibraryStore:
    """Storage operations for library_entries."""

    @staticmethod
    async def get(entry_id: UUID) -> Optional[LibraryEntry]:
        """Get a live entry without locking."""
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT * FROM library_entries WHERE id = $1 AND {LIVE}",
                    entry_id,
                )
                return LibraryEntry.model_validate(dict(row)) if row else None

        except Exception as e:
            logger.error("library_entry_get_failed", entry_id=str(entry_id), error=str(e))
            raise StorageError(f"Failed to get library entry: {e}") from e

    @staticmethod
    async def lock_for_resolution(conn: asyncpg.Connection, entry_id: UUID) -> Optional[LibraryEntry]:
        """Lock the entry row for the current transaction.

        Returns:
            The entry, or None when it is gone or another worker holds the lock
        """
        row = await conn.fetchrow(
            f"""
            SELECT * FROM library_entries
            WHERE id = $1 AND {LIVE}
            FOR UPDATE SKIP LOCKED
            """,
            entry_id,
        )
        return LibraryEntry.model_validate(dict(row)) if row else None

    @staticmethod
    async def get_series_metadata_source(
        conn: asyncpg.Connection, series_id: UUID
    ) -> Optional[MetadataSource]:
        value = await conn.fetchval("SELECT metadata_source FROM series WHERE id = $1", series_id)
        return MetadataSource(value) if value else None

    @staticmethod
    async def find_live_duplicate(
        conn: asyncpg.Connection, user_id: UUID, series_id: UUID, exclude_id: UUID
    ) -> Optional[LibraryEntry]:
        """Another live entry of the same user already linked to ``series_id``."""
        row = await conn.fetchrow(
            f"""
            SELECT * FROM library_entries
            WHERE user_id = $1 AND series_id = $2 AND id <> $3 AND {LIVE}
            FOR UPDATE
            """,
            user_id,
            series_id,
            exclude_id,
        )
        return LibraryEntry.model_validate(dict(row)) if row else None

    @staticmethod
    async def mark_enriched(
        conn: asyncpg.Connection,
        entry_id: UUID,
        series_id: UUID,
        source_url: str,
        needs_review: bool,
        reset_retry_count: bool,
        now: datetime,
    ) -> bool:
        """Link the entry to its resolved series.

        The row must still carry ``source_url``, be unprotected, and be
        unlinked or already linked to ``series_id``.

        Returns:
            False when the guard rejected the update
        """
        retry_clause = ", metadata_retry_count = 0" if reset_retry_count else ""
        result = await conn.execute(
            f"""
            UPDATE library_entries
            SET series_id = $2,
                metadata_status = $4,
                needs_review = $5,
                last_metadata_error = NULL,
                last_metadata_attempt_at = $6,
                updated_at = $6
                {retry_clause}
            WHERE id = $1 AND source_url = $3 AND {LIVE} AND {UNPROTECTED}
            AND (series_id IS NULL OR series_id = $2)
            """,
            entry_id,
            series_id,
            source_url,
            MetadataStatus.ENRICHED.value,
            needs_review,
            now,
        )
        return result == "UPDATE 1"

    @staticmethod
    async def mark_unavailable(
        conn: asyncpg.Connection,
        entry_id: UUID,
        retry_count: int,
        error: Optional[str],
        now: datetime,
        needs_review: bool = False,
    ) -> None:
        await conn.execute(
            f"""
            UPDATE library_entries
            SET metadata_status = $2,
                metadata_retry_count = $3,
                last_metadata_error = $4,
                last_metadata_attempt_at = $5,
                needs_review = needs_review OR $6,
                updated_at = $5
            WHERE id = $1 AND {LIVE}
            """,
            entry_id,
            MetadataStatus.UNAVAILABLE.value,
            retry_count,
            error,
            now,
            needs_review,
        )

    @staticmethod
    async def record_transient_failure(entry_id: UUID, retry_count: int, error: str, now: datetime) -> None:
        """Keep the entry pending and store the sanitized error."""
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    f"""
                    UPDATE library_entries
                    SET metadata_status = $2,
                        metadata_retry_count = $3,
                        last_metadata_error = $4,
                        last_metadata_attempt_at = $5,
                        updated_at = $5
                    WHERE id = $1 AND {LIVE} AND {UNPROTECTED}
                    """,
                    entry_id,
                    MetadataStatus.PENDING.value,
                    retry_count,
                    error,
                    now,
                )

        except Exception as e:
            logger.error("library_transient_update_failed", entry_id=str(entry_id), error=str(e))
            raise StorageError(f"Failed to record transient failure: {e}") from e

    @staticmethod
    async def record_permanent_failure(
        entry_id: UUID, status: MetadataStatus, retry_count: Optional[int], error: str, now: datetime
    ) -> None:
        """Mark the entry unavailable or failed outside a resolution transaction."""
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    f"""
                    UPDATE library_entries
                    SET metadata_status = $2,
                        metadata_retry_count = COALESCE($3, metadata_retry_count),
                        last_metadata_error = $4,
                        last_metadata_attempt_at = $5,
                        updated_at = $5
                    WHERE id = $1 AND {LIVE} AND {UNPROTECTED}
                    """,
                    entry_id,
                    status.value,
                    retry_count,
                    error,
                    now,
                )

        except Exception as e:
            logger.error("library_failure_update_failed", entry_id=str(entry_id), error=str(e))
            raise StorageError(f"Failed to record failure: {e}") from e

    @staticmethod
    async def reset_for_recovery(entry_id: UUID) -> bool:
        """Move an unavailable/failed, unprotected entry back to pending.

        Returns:
            True if the entry was reset
        """
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                result = await conn.execute(
                    f"""
                    UPDATE library_entries
                    SET metadata_status = $2, updated_at = NOW()
                    WHERE id = $1 AND {LIVE} AND {UNPROTECTED}
                    AND metadata_status IN ($3, $4)
                    """,
                    entry_id,
                    MetadataStatus.PENDING.value,
                    MetadataStatus.UNAVAILABLE.value,
                    MetadataStatus.FAILED.value,
                )
                return result == "UPDATE 1"

        except Exception as e:
            logger.error("library_recovery_reset_failed", entry_id=str(entry_id), error=str(e))
            raise StorageError(f"Failed to reset entry for recovery: {e}") from e

    @staticmethod
    async def set_progress(conn: asyncpg.Connection, entry_id: UUID, progress: Decimal) -> None:
        await conn.execute(
            "UPDATE library_entries SET last_read_chapter = $2, updated_at = NOW() WHERE id = $1",
            entry_id,
            progress,
        )

    @staticmethod
    async def soft_delete(conn: asyncpg.Connection, entry_id: UUID, now: datetime) -> None:
        await conn.execute(
            f"""
            UPDATE library_entries
            SET deleted_at = $2, metadata_status = $3, updated_at = $2
            WHERE id = $1 AND {LIVE}
            """,
            entry_id,
            now,
            MetadataStatus.UNAVAILABLE.value,
        )

    @staticmethod
    async def list_healing_candidates(
        attempted_before: datetime, max_retries: int, limit: int
    ) -> list[UUID]:
        """Unavailable/failed entries due for another automatic attempt.

        Excludes protected entries and entries linked to user-override series.
        Oldest and least-retried first.
        """
        pool = await get_connection_pool()

        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT le.id FROM library_entries le
                    LEFT JOIN series s ON s.id = le.series_id
                    WHERE le.{LIVE}
                    AND le.metadata_status IN ($1, $2)
                    AND le.manually_linked = FALSE
                    AND le.manual_override_at IS NULL
                    AND (s.id IS NULL OR s.metadata_source <> $3)
                    AND le.metadata_retry_count < $4
                    AND (le.last_metadata_attempt_at IS NULL OR le.last_metadata_attempt_at < $5)
                    ORDER BY le.metadata_retry_count ASC, le.last_metadata_attempt_at ASC NULLS FIRST
                    LIMIT $6
                    """,
                    MetadataStatus.UNAVAILABLE.value,
                    MetadataStatus.FAILED.value,
                    MetadataSource.USER_OVERRIDE.value,
                    max_retries,
                    attempted_before,
                    limit,
                )
                return [row["id"] for row in rows]

        except Exception as e:
            logger.error("library_healing_query_failed", error=str(e))
            raise StorageError(f"Failed to list healing candidates: {e}") from e
