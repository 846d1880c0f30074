"""Tests for metadata source priority reconciliation."""

import pytest

from chaptertrack_contracts import MetadataSource
from chaptertrack_resolver.priority import SOURCE_PRIORITY, can_overwrite, reconcile_fields

pytestmark = pytest.mark.unit


class TestPriorityTable:
    """Tests for SOURCE_PRIORITY."""

    def test_covers_every_source(self):
        assert set(SOURCE_PRIORITY) == set(MetadataSource)

    def test_order(self):
        ordered = sorted(SOURCE_PRIORITY, key=SOURCE_PRIORITY.get)

        assert ordered == [
            MetadataSource.USER_OVERRIDE,
            MetadataSource.CANONICAL,
            MetadataSource.SECONDARY,
            MetadataSource.INFERRED,
        ]

    def test_can_overwrite(self):
        assert can_overwrite(MetadataSource.INFERRED, MetadataSource.CANONICAL)
        assert can_overwrite(MetadataSource.CANONICAL, MetadataSource.CANONICAL)
        assert not can_overwrite(MetadataSource.USER_OVERRIDE, MetadataSource.CANONICAL)


class TestReconcileFields:
    """Tests for reconcile_fields()."""

    def test_new_series_takes_everything(self):
        changes = reconcile_fields(
            {}, None, {"title": "Solo Leveling", "genres": ["Action"], "year": None}, MetadataSource.CANONICAL
        )

        assert changes == {
            "title": "Solo Leveling",
            "genres": ["Action"],
            "metadata_source": MetadataSource.CANONICAL,
        }

    def test_higher_priority_overwrites_scalars(self):
        changes = reconcile_fields(
            {"title": "solo leveling", "status": "ongoing"},
            MetadataSource.INFERRED,
            {"title": "Solo Leveling", "status": "completed"},
            MetadataSource.CANONICAL,
        )

        assert changes["title"] == "Solo Leveling"
        assert changes["status"] == "completed"
        assert changes["metadata_source"] is MetadataSource.CANONICAL

    def test_lower_priority_only_fills_gaps(self):
        changes = reconcile_fields(
            {"title": "Solo Leveling", "description": None},
            MetadataSource.CANONICAL,
            {"title": "Solo Leveling (Webtoon)", "description": "A hunter."},
            MetadataSource.SECONDARY,
        )

        assert changes == {"description": "A hunter."}

    def test_lists_merged_regardless_of_priority(self):
        changes = reconcile_fields(
            {"alternative_titles": ["나 혼자만 레벨업"]},
            MetadataSource.USER_OVERRIDE,
            {"alternative_titles": ["Solo Leveling", "나 혼자만 레벨업"]},
            MetadataSource.CANONICAL,
        )

        assert changes == {"alternative_titles": ["나 혼자만 레벨업", "Solo Leveling"]}

    def test_none_never_clears(self):
        changes = reconcile_fields(
            {"year": 2018}, MetadataSource.INFERRED, {"year": None}, MetadataSource.CANONICAL
        )

        assert changes == {}
