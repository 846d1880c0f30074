"""Tests for duplicate chapter repair.

Tests cover:
- canonical_key_for: legacy keys re-derived, slug keys preserved
- merge_duplicate_chapters: primary selection, link transfer, soft delete,
  renumbering, dry run, error wrapping
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from chaptertrack_common import StorageError
from chaptertrack_sync.chapter_merge import canonical_key_for, merge_duplicate_chapters

pytestmark = pytest.mark.unit

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)
MODULE = "chaptertrack_sync.chapter_merge"


def _make_mock_pool(conn_mock):
    """Create a mock connection pool wrapping the given connection mock."""
    pool = MagicMock()
    ctx = AsyncMock()
    ctx.__aenter__ = AsyncMock(return_value=conn_mock)
    ctx.__aexit__ = AsyncMock(return_value=False)
    pool.acquire.return_value = ctx
    return pool


def _make_conn():
    conn = AsyncMock()
    tx = MagicMock()
    tx.__aenter__ = AsyncMock(return_value=None)
    tx.__aexit__ = AsyncMock(return_value=False)
    conn.transaction = MagicMock(return_value=tx)
    return conn


def _row(number: str, links: int, age_days: int = 0, title=None) -> dict:
    return {
        "id": uuid4(),
        "chapter_number": number,
        "title": title,
        "link_count": links,
        "first_seen_at": NOW - timedelta(days=age_days),
    }


class TestCanonicalKeyFor:
    """Tests for canonical_key_for()."""

    @pytest.mark.parametrize("stored", ["10", "10.0", "Ch. 10", "Chapter 10.00"])
    def test_numeric_variants(self, stored):
        assert canonical_key_for(stored) == "10"

    def test_slug_key_kept(self):
        assert canonical_key_for("special-3a9f0c21d4e7") == "special-3a9f0c21d4e7"


@pytest.fixture
def merge_env():
    with (
        patch(f"{MODULE}.get_connection_pool", new_callable=AsyncMock) as mock_get_pool,
        patch(f"{MODULE}.ChapterStore") as chapter_store,
    ):
        conn = _make_conn()
        mock_get_pool.return_value = _make_mock_pool(conn)
        chapter_store.transfer_links = AsyncMock(return_value=1)
        chapter_store.soft_delete = AsyncMock()
        chapter_store.renumber = AsyncMock()
        chapter_store.key_in_use = AsyncMock(return_value=False)
        yield chapter_store


class TestMergeDuplicateChapters:
    """Tests for merge_duplicate_chapters()."""

    async def test_keeps_chapter_with_most_links(self, merge_env):
        canonical = _row("10", links=1, age_days=1)
        legacy = _row("10.0", links=3, age_days=5)
        merge_env.list_live_with_link_counts = AsyncMock(return_value=[canonical, legacy])

        report = await merge_duplicate_chapters(uuid4(), now=NOW)

        assert merge_env.transfer_links.call_args[0][1:] == (canonical["id"], legacy["id"])
        merge_env.soft_delete.assert_awaited_once()
        assert merge_env.soft_delete.call_args[0][1] == canonical["id"]
        # Survivor carried the legacy key, so it is renumbered
        renumber_args = merge_env.renumber.call_args[0]
        assert renumber_args[1:] == (legacy["id"], "10", "normal-10")
        assert report.groups_merged == 1
        assert report.chapters_deleted == 1
        assert report.renumbered == 1

    async def test_link_count_tie_goes_to_earliest(self, merge_env):
        newer = _row("10", links=2, age_days=1)
        older = _row("Ch. 10", links=2, age_days=9)
        merge_env.list_live_with_link_counts = AsyncMock(return_value=[newer, older])

        report = await merge_duplicate_chapters(uuid4(), now=NOW)

        assert report.details[0]["primary"] == str(older["id"])

    async def test_distinct_chapters_untouched(self, merge_env):
        merge_env.list_live_with_link_counts = AsyncMock(return_value=[_row("1", 1), _row("2", 1)])

        report = await merge_duplicate_chapters(uuid4(), now=NOW)

        merge_env.transfer_links.assert_not_awaited()
        merge_env.renumber.assert_not_awaited()
        assert report.groups_merged == 0

    async def test_dry_run_writes_nothing(self, merge_env):
        merge_env.list_live_with_link_counts = AsyncMock(return_value=[_row("10", 1), _row("10.0", 2)])

        report = await merge_duplicate_chapters(uuid4(), dry_run=True, now=NOW)

        merge_env.transfer_links.assert_not_awaited()
        merge_env.soft_delete.assert_not_awaited()
        merge_env.renumber.assert_not_awaited()
        assert report.dry_run is True
        assert report.chapters_deleted == 1

    async def test_renumber_conflict_without_owner_raises(self, merge_env):
        owner = _row("extra-10", links=1)
        stray = _row("Ch. 10", links=1)
        merge_env.list_live_with_link_counts = AsyncMock(return_value=[owner, stray])
        merge_env.key_in_use = AsyncMock(return_value=True)

        with pytest.raises(StorageError, match="No live chapter owns key 10"):
            await merge_duplicate_chapters(uuid4(), now=NOW)

    async def test_error_wrapped(self, merge_env):
        merge_env.list_live_with_link_counts = AsyncMock(side_effect=Exception("connection lost"))

        with pytest.raises(StorageError, match="Failed to merge"):
            await merge_duplicate_chapters(uuid4(), now=NOW)
