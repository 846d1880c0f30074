"""Tests for contract schemas.

Tests cover:
- Enum values persisted in the database
- Model defaults
- NormalizedChapter immutability
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from chaptertrack_contracts import (
    CatalogTier,
    ChapterType,
    LibraryEntry,
    MetadataSource,
    MetadataStatus,
    NormalizedChapter,
    Series,
)

pytestmark = pytest.mark.unit


class TestEnums:
    """Enum values are stored as plain strings."""

    def test_metadata_status_values(self):
        assert [s.value for s in MetadataStatus] == ["pending", "enriched", "unavailable", "failed"]

    def test_metadata_source_round_trip_from_db_value(self):
        assert MetadataSource("USER_OVERRIDE") is MetadataSource.USER_OVERRIDE

    def test_enums_compare_to_strings(self):
        assert ChapterType.SPECIAL == "special"
        assert CatalogTier.A == "A"


class TestDefaults:
    """Model defaults match a freshly imported row."""

    def test_library_entry_defaults(self):
        entry = LibraryEntry(id=uuid4(), user_id=uuid4(), source_url="https://a.example/s/1")

        assert entry.metadata_status is MetadataStatus.PENDING
        assert entry.needs_review is False
        assert entry.manually_linked is False
        assert entry.metadata_retry_count == 0

    def test_series_defaults(self):
        series = Series(id=uuid4(), title="Solo Leveling")

        assert series.catalog_tier is CatalogTier.C
        assert series.metadata_source is MetadataSource.INFERRED
        assert series.alternative_titles == []
        assert series.activity_score == 0.0


class TestNormalizedChapter:
    """NormalizedChapter is a frozen value object."""

    def test_frozen(self):
        chapter = NormalizedChapter(number=Decimal("10"), type=ChapterType.NORMAL, slug="normal-10")

        with pytest.raises(ValidationError):
            chapter.slug = "other"

    def test_hashable_and_equal(self):
        a = NormalizedChapter(number=Decimal("1.5"), slug="normal-1.5")
        b = NormalizedChapter(number=Decimal("1.5"), slug="normal-1.5")

        assert a == b
        assert len({a, b}) == 1

    def test_number_optional(self):
        chapter = NormalizedChapter(slug="normal-unknown")

        assert chapter.number is None
        assert chapter.type is ChapterType.NORMAL


def test_datetime_fields_accept_aware_values():
    now = datetime.now(timezone.utc)
    entry = LibraryEntry(
        id=uuid4(),
        user_id=uuid4(),
        source_url="https://a.example/s/1",
        last_metadata_attempt_at=now,
    )

    assert entry.last_metadata_attempt_at == now
