"""Tests for activity scoring and tier rules.

Tests cover:
- Event weights
- Engagement formula
- Decay factor boundaries
- Promotion rules (A reasons in order, B only from C, never demote)
"""

from datetime import datetime, timedelta, timezone

import pytest

from chaptertrack_activity.scoring import (
    activity_score,
    decay_factor,
    engagement,
    evaluate_promotion,
    event_weight,
)
from chaptertrack_contracts import ActivityEventType, CatalogTier

pytestmark = pytest.mark.unit

NOW = datetime(2026, 6, 1, tzinfo=timezone.utc)
MONTH = timedelta(days=30)


def _inputs(**overrides):
    base = {
        "event_weight": 0,
        "total_follows": 0,
        "library_count": 0,
        "weekly_readers": 0,
        "last_chapter_at": None,
        "last_activity_at": None,
    }
    base.update(overrides)
    return base


class TestEventWeights:
    """Tests for event_weight()."""

    @pytest.mark.parametrize(
        "event_type,weight",
        [
            (ActivityEventType.CHAPTER_DETECTED, 1),
            (ActivityEventType.CHAPTER_SOURCE_ADDED, 2),
            (ActivityEventType.SEARCH_IMPRESSION, 5),
            (ActivityEventType.CHAPTER_READ, 50),
            (ActivityEventType.SERIES_FOLLOWED, 100),
        ],
    )
    def test_weights(self, event_type, weight):
        assert event_weight(event_type) == weight

    def test_every_event_type_has_weight(self):
        for event_type in ActivityEventType:
            assert event_weight(event_type) > 0


class TestEngagement:
    """Tests for engagement()."""

    def test_combines_all_inputs(self):
        inputs = _inputs(event_weight=150, total_follows=20, library_count=5, weekly_readers=8)
        assert engagement(inputs) == 150 + 20 + 10 + 4

    def test_none_values_count_as_zero(self):
        assert engagement(_inputs(total_follows=None, event_weight=None)) == 0.0


class TestDecayFactor:
    """Tests for decay_factor()."""

    def test_no_chapter_is_not_decayed(self):
        assert decay_factor(None, None, NOW) == 1.0

    def test_recent_chapter(self):
        assert decay_factor(NOW - 11 * MONTH, NOW, NOW) == 1.0

    def test_twelve_months_halves(self):
        assert decay_factor(NOW - 12 * MONTH, NOW, NOW) == 0.5

    def test_twenty_four_months_with_recent_activity(self):
        assert decay_factor(NOW - 24 * MONTH, NOW - MONTH, NOW) == 0.1

    def test_twenty_four_months_and_inactive_is_zero(self):
        assert decay_factor(NOW - 24 * MONTH, NOW - 6 * MONTH, NOW) == 0.0

    def test_twenty_four_months_never_active_is_zero(self):
        assert decay_factor(NOW - 30 * MONTH, None, NOW) == 0.0


class TestActivityScore:
    """Tests for activity_score()."""

    def test_decay_applied(self):
        inputs = _inputs(event_weight=1000, last_chapter_at=NOW - 13 * MONTH, last_activity_at=NOW)
        assert activity_score(inputs, NOW) == 500.0

    def test_same_inputs_same_score(self):
        inputs = _inputs(event_weight=321, total_follows=3, weekly_readers=3)
        assert activity_score(inputs, NOW) == activity_score(dict(inputs), NOW)

    def test_rounded_to_two_places(self):
        assert activity_score(_inputs(weekly_readers=1, event_weight=0.333), NOW) == 0.83


class TestEvaluatePromotion:
    """Tests for evaluate_promotion()."""

    def test_high_engagement_without_followers(self):
        decision = evaluate_promotion(CatalogTier.C, 5200.0, 0, False, False)
        assert decision.tier is CatalogTier.A
        assert decision.reason == "high_engagement"

    def test_recent_chapter_wins_first(self):
        decision = evaluate_promotion(CatalogTier.B, 9000.0, 50, True, True)
        assert decision.reason == "recent_chapter"

    def test_popular(self):
        decision = evaluate_promotion(CatalogTier.C, 0.0, 10, False, False)
        assert decision.reason == "popular"

    def test_curated_list(self):
        decision = evaluate_promotion(CatalogTier.B, 0.0, 0, False, True)
        assert decision.tier is CatalogTier.A
        assert decision.reason == "curated_list"

    def test_user_relevant_from_c(self):
        decision = evaluate_promotion(CatalogTier.C, 0.0, 1, False, False)
        assert decision.tier is CatalogTier.B
        assert decision.reason == "user_relevant"

    def test_b_not_reassigned_b(self):
        assert evaluate_promotion(CatalogTier.B, 1500.0, 3, False, False) is None

    def test_a_never_changes(self):
        assert evaluate_promotion(CatalogTier.A, 0.0, 0, False, False) is None
        assert evaluate_promotion(CatalogTier.A, 9999.0, 99, True, True) is None

    def test_c_below_thresholds(self):
        assert evaluate_promotion(CatalogTier.C, 999.99, 0, False, False) is None
