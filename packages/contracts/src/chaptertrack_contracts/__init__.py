"""chaptertrack contracts - Pure Pydantic schemas.

This package contains ONLY Pydantic schemas with no business logic.
Dependencies: pydantic only (no logging, no DB drivers).
"""

from chaptertrack_contracts.models import (
    # Enums
    ActivityEventType,
    CatalogTier,
    ChapterType,
    JobState,
    MetadataSource,
    MetadataStatus,
    # Chapters
    ChapterSourceLink,
    LogicalChapter,
    NormalizedChapter,
    ScrapedChapter,
    ScrapedSeries,
    SeriesSource,
    # Series & library
    ActivityEvent,
    LibraryEntry,
    Series,
    # Resolution
    MetadataCandidate,
    # Jobs
    Job,
)

__version__ = "1.0.0"

__all__ = [
    "ActivityEventType",
    "CatalogTier",
    "ChapterType",
    "JobState",
    "MetadataSource",
    "MetadataStatus",
    "ChapterSourceLink",
    "LogicalChapter",
    "NormalizedChapter",
    "ScrapedChapter",
    "ScrapedSeries",
    "SeriesSource",
    "ActivityEvent",
    "LibraryEntry",
    "Series",
    "MetadataCandidate",
    "Job",
]
