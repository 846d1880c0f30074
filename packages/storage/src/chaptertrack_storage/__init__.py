"""chaptertrack storage - PostgreSQL storage layer.

This package provides:
- Database connection management (asyncpg pooling)
- Serializable transactions with conflict retry
- ChapterStore / LegacyChapterStore (logical chapters, source links)
- SeriesStore, SeriesSourceStore (catalog rows)
- LibraryStore (library entries and resolution state)
- ActivityStore (append-only activity events)
- QueueStore (durable job queue)

Exclusive DB ownership - no shared database access from other packages.
"""

from chaptertrack_storage.activity_store import ActivityStore
from chaptertrack_storage.chapter_store import ChapterStore, LegacyChapterStore
from chaptertrack_storage.connection import (
    DatabaseConfig,
    check_connection_health,
    close_connection_pool,
    get_connection_pool,
)
from chaptertrack_storage.library_store import LibraryStore
from chaptertrack_storage.queue_store import QueueStore, compute_backoff
from chaptertrack_storage.series_source_store import SeriesSourceStore
from chaptertrack_storage.series_store import SeriesStore
from chaptertrack_storage.transactions import is_serialization_failure, run_serializable

__all__ = [
    "ActivityStore",
    "ChapterStore",
    "LegacyChapterStore",
    "DatabaseConfig",
    "check_connection_health",
    "close_connection_pool",
    "get_connection_pool",
    "LibraryStore",
    "QueueStore",
    "compute_backoff",
    "SeriesSourceStore",
    "SeriesStore",
    "is_serialization_failure",
    "run_serializable",
]
