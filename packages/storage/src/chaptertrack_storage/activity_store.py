"""ActivityStore - append-only activity_events table."""

from __future__ import annotations

from typing import Optional

import asyncpg
from chaptertrack_common import StorageError, get_logger
from chaptertrack_contracts import ActivityEvent

from chaptertrack_storage.connection import get_connection_pool

logger = get_logger(__name__)

_INSERT = """
    INSERT INTO activity_events (
        series_id, event_type, weight, source_name, chapter_id, user_id, occurred_at
    ) VALUES ($1, $2, $3, $4, $5, $6, $7)
"""


def _params(event: ActivityEvent) -> tuple:
    return (
        event.series_id,
        event.event_type.value,
        event.weight,
        event.source_name,
        event.chapter_id,
        event.user_id,
        event.occurred_at,
    )


class ActivityStore:
    """Storage operations for activity events. Rows are never updated."""

    @staticmethod
    async def insert(event: ActivityEvent, conn: Optional[asyncpg.Connection] = None) -> None:
        try:
            if conn is not None:
                await conn.execute(_INSERT, *_params(event))
                return
            pool = await get_connection_pool()
            async with pool.acquire() as pooled:
                await pooled.execute(_INSERT, *_params(event))

        except Exception as e:
            logger.error(
                "activity_event_insert_failed",
                series_id=str(event.series_id),
                event_type=event.event_type.value,
                error=str(e),
            )
            raise StorageError(f"Failed to record activity event: {e}") from e

    @staticmethod
    async def insert_batch(events: list[ActivityEvent], conn: Optional[asyncpg.Connection] = None) -> int:
        """Insert events in one transaction.

        Pass ``conn`` to join the caller's transaction instead.

        Returns:
            Number of events inserted
        """
        if not events:
            return 0
        rows = [_params(e) for e in events]

        try:
            if conn is not None:
                await conn.executemany(_INSERT, rows)
            else:
                pool = await get_connection_pool()
                async with pool.acquire() as pooled:
                    async with pooled.transaction():
                        await pooled.executemany(_INSERT, rows)

            logger.info("activity_events_inserted", count=len(events))
            return len(events)

        except Exception as e:
            logger.error("activity_batch_insert_failed", count=len(events), error=str(e))
            raise StorageError(f"Failed to record activity batch: {e}") from e
