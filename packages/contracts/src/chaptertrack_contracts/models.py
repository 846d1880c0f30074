"""Pydantic schemas for chaptertrack entities.

Pure data definitions: no business logic, no database access.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Enums
# =============================================================================


class ChapterType(str, Enum):
    """Kind of chapter derived from its raw label."""

    NORMAL = "normal"
    SPECIAL = "special"
    EXTRA = "extra"


class MetadataStatus(str, Enum):
    """Resolution state of a library entry."""

    PENDING = "pending"
    ENRICHED = "enriched"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


class MetadataSource(str, Enum):
    """Origin of a series' bibliographic fields.

    Ranked in ``chaptertrack_resolver.priority``; a user override always wins.
    """

    USER_OVERRIDE = "USER_OVERRIDE"
    CANONICAL = "CANONICAL"
    SECONDARY = "SECONDARY"
    INFERRED = "INFERRED"


class CatalogTier(str, Enum):
    """Sync-priority tier. A is synced most often."""

    A = "A"
    B = "B"
    C = "C"


class ActivityEventType(str, Enum):
    """Weighted activity signals feeding the series score."""

    CHAPTER_DETECTED = "chapter_detected"
    CHAPTER_SOURCE_ADDED = "chapter_source_added"
    SEARCH_IMPRESSION = "search_impression"
    CHAPTER_READ = "chapter_read"
    SERIES_FOLLOWED = "series_followed"


class JobState(str, Enum):
    """Lifecycle of a queued job."""

    WAITING = "waiting"
    ACTIVE = "active"
    DELAYED = "delayed"
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# Chapters
# =============================================================================


class NormalizedChapter(BaseModel):
    """Canonical identity derived from a raw chapter label."""

    model_config = ConfigDict(frozen=True)

    number: Optional[Decimal] = None
    type: ChapterType = ChapterType.NORMAL
    slug: str


class LogicalChapter(BaseModel):
    """One chapter of a series, shared by every source that carries it."""

    id: UUID
    series_id: UUID
    chapter_number: str = Field(..., description="Canonical chapter key")
    slug: str
    title: Optional[str] = None
    published_at: Optional[datetime] = None
    first_seen_at: datetime
    deleted_at: Optional[datetime] = None


class ChapterSourceLink(BaseModel):
    """A provider's copy of a logical chapter."""

    id: UUID
    logical_chapter_id: UUID
    source_id: UUID
    source_name: str
    source_url: str
    published_at: Optional[datetime] = None
    detected_at: datetime


class SeriesSource(BaseModel):
    """A series as listed by one provider."""

    id: UUID
    series_id: Optional[UUID] = None
    source_name: str
    source_id: str
    source_url: str
    cover_url: Optional[str] = None
    is_primary_cover: bool = False
    last_checked_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    failure_count: int = 0
    updated_at: Optional[datetime] = None


class ScrapedChapter(BaseModel):
    """A raw chapter as returned by a scraper adapter."""

    label: str
    url: str
    number: Optional[str] = None
    title: Optional[str] = None
    published_at: Optional[datetime] = None


class ScrapedSeries(BaseModel):
    """Scraper adapter output for one series source."""

    title: str
    chapters: list[ScrapedChapter] = Field(default_factory=list)
    cover_url: Optional[str] = None


# =============================================================================
# Series & library
# =============================================================================


class Series(BaseModel):
    """Canonical catalog entry."""

    id: UUID
    title: str
    alternative_titles: list[str] = Field(default_factory=list)
    description: Optional[str] = None
    status: Optional[str] = None
    year: Optional[int] = None
    original_language: Optional[str] = None
    genres: list[str] = Field(default_factory=list)
    cover_url: Optional[str] = None
    best_cover_url: Optional[str] = None
    external_id: Optional[str] = None
    metadata_source: MetadataSource = MetadataSource.INFERRED
    metadata_confidence: Optional[float] = None
    metadata_schema_version: int = 0
    override_user_id: Optional[UUID] = None
    latest_chapter: Optional[Decimal] = None
    last_chapter_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    activity_score: float = 0.0
    catalog_tier: CatalogTier = CatalogTier.C
    tier_reason: Optional[str] = None
    tier_promoted_at: Optional[datetime] = None
    total_follows: int = 0
    weekly_readers: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LibraryEntry(BaseModel):
    """A user's tracked series, keyed by the source URL they imported."""

    id: UUID
    user_id: UUID
    series_id: Optional[UUID] = None
    source_url: str
    imported_title: Optional[str] = None
    metadata_status: MetadataStatus = MetadataStatus.PENDING
    needs_review: bool = False
    manually_linked: bool = False
    manual_override_at: Optional[datetime] = None
    metadata_retry_count: int = 0
    last_metadata_error: Optional[str] = None
    last_metadata_attempt_at: Optional[datetime] = None
    last_read_chapter: Optional[Decimal] = None
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ActivityEvent(BaseModel):
    """Immutable weighted activity record."""

    id: Optional[UUID] = None
    series_id: UUID
    event_type: ActivityEventType
    weight: int
    source_name: Optional[str] = None
    chapter_id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    occurred_at: datetime


# =============================================================================
# Metadata resolution
# =============================================================================


class MetadataCandidate(BaseModel):
    """A series as described by the external metadata provider."""

    external_id: str
    title: str
    alternative_titles: list[str] = Field(default_factory=list)
    description: Optional[str] = None
    status: Optional[str] = None
    year: Optional[int] = None
    original_language: Optional[str] = None
    genres: list[str] = Field(default_factory=list)
    cover_url: Optional[str] = None
    popularity: int = 0


# =============================================================================
# Jobs
# =============================================================================


class Job(BaseModel):
    """A durable queue row."""

    id: str
    queue: str
    name: str
    payload: dict[str, Any] = Field(default_factory=dict)
    state: JobState = JobState.WAITING
    priority: int = 0
    attempts_made: int = 0
    max_attempts: int = 1
    backoff_seconds: float = 0.0
    run_at: datetime
    last_error: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
