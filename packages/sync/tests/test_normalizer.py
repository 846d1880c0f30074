"""Tests for chapter label normalization.

Tests cover:
- parse_number: labelled numbers, fallbacks, malformed input
- to_canonical_string: trailing zeros, idempotence, missing numbers
- classify: normal/special/extra markers
- normalize / chapter_key: label variants converge on one key
- should_merge: numbered and unnumbered comparison rules
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from chaptertrack_contracts import ChapterType
from chaptertrack_sync.normalizer import (
    NO_NUMBER,
    chapter_key,
    classify,
    normalize,
    normalize_title,
    parse_number,
    should_merge,
    title_hash,
    to_canonical_string,
)

pytestmark = pytest.mark.unit


class TestParseNumber:
    """Tests for parse_number()."""

    @pytest.mark.parametrize(
        "label,expected",
        [
            ("Chapter 10", Decimal("10")),
            ("Ch. 10.5", Decimal("10.5")),
            ("ch.7", Decimal("7")),
            ("#42", Decimal("42")),
            ("Episode 3", Decimal("3")),
            ("Vol. 3 Ch. 25", Decimal("25")),
            ("103", Decimal("103")),
        ],
    )
    def test_extracts_number(self, label, expected):
        assert parse_number(label) == expected

    def test_no_digits(self):
        assert parse_number("Prologue") is None

    def test_empty_label(self):
        assert parse_number("") is None


class TestCanonicalString:
    """Tests for to_canonical_string()."""

    @pytest.mark.parametrize(
        "number,expected",
        [
            (Decimal("1"), "1"),
            (Decimal("1.0"), "1"),
            (Decimal("1.00"), "1"),
            (Decimal("1.50"), "1.5"),
            (Decimal("0.10"), "0.1"),
            (Decimal("1E+1"), "10"),
        ],
    )
    def test_formats(self, number, expected):
        assert to_canonical_string(number) == expected

    def test_none_is_sentinel(self):
        assert to_canonical_string(None) == NO_NUMBER

    def test_nan_is_sentinel(self):
        assert to_canonical_string(Decimal("NaN")) == NO_NUMBER

    @pytest.mark.parametrize("text", ["1", "10.5", "0.25", "1000"])
    def test_idempotent(self, text):
        """Re-parsing canonical output yields the same string."""
        once = to_canonical_string(Decimal(text))

        assert to_canonical_string(Decimal(once)) == once


class TestClassify:
    """Tests for classify()."""

    def test_plain_chapter_is_normal(self):
        assert classify("Chapter 12") is ChapterType.NORMAL

    def test_side_story_is_extra(self):
        assert classify("Side Story 3") is ChapterType.EXTRA

    def test_bonus_is_extra(self):
        assert classify("Bonus Chapter") is ChapterType.EXTRA

    def test_oneshot_is_special(self):
        assert classify("Oneshot") is ChapterType.SPECIAL

    def test_season_marker_is_special(self):
        assert classify("S2 Chapter 5") is ChapterType.SPECIAL

    def test_word_season_is_not_special(self):
        assert classify("Season 2 Chapter 5") is ChapterType.NORMAL


class TestNormalize:
    """Tests for normalize() and chapter_key()."""

    def test_label_variants_share_key(self):
        keys = {chapter_key(normalize(label)) for label in ["Chapter 10", "Ch. 10.0", "#10"]}

        assert keys == {"10"}

    def test_slug_includes_type_and_number(self):
        chapter = normalize("Chapter 10.50")

        assert chapter.slug == "normal-10.5"
        assert chapter.number == Decimal("10.50")

    def test_extra_key_does_not_collide_with_normal(self):
        assert chapter_key(normalize("Extra 10")) == "extra-10"
        assert chapter_key(normalize("Chapter 10")) == "10"

    def test_unnumbered_uses_title_hash(self):
        chapter = normalize("Oneshot", "The Beginning")

        assert chapter.number is None
        assert chapter.slug == f"special-{title_hash('The Beginning')}"
        assert chapter_key(chapter) == chapter.slug

    def test_unnumbered_without_title(self):
        assert normalize("Prologue").slug == "special-unknown"

    def test_none_label(self):
        chapter = normalize(None)

        assert chapter.type is ChapterType.NORMAL
        assert chapter.slug == "normal-unknown"

    def test_title_normalization(self):
        assert normalize_title("  The  Return!! ") == "the return"
        assert title_hash("The Return!!") == title_hash("the return")


class TestShouldMerge:
    """Tests for should_merge()."""

    T0 = datetime(2026, 3, 1, tzinfo=timezone.utc)

    def test_same_number_same_type(self):
        assert should_merge(normalize("Chapter 10"), normalize("#10.0"))

    def test_same_number_different_type(self):
        assert not should_merge(normalize("Chapter 10"), normalize("Extra 10"))

    def test_numbered_vs_unnumbered(self):
        assert not should_merge(normalize("Chapter 1"), normalize("Prologue"))

    def test_unnumbered_same_title_within_window(self):
        a, b = normalize("Oneshot", "Hello"), normalize("Oneshot", "hello!")

        assert should_merge(
            a, b, a_title="Hello", b_title="hello!", a_published=self.T0, b_published=self.T0 + timedelta(hours=48)
        )

    def test_unnumbered_same_title_outside_window(self):
        a, b = normalize("Oneshot", "Hello"), normalize("Oneshot", "Hello")

        assert not should_merge(
            a, b, a_title="Hello", b_title="Hello", a_published=self.T0, b_published=self.T0 + timedelta(days=4)
        )

    def test_naive_and_aware_dates_compared_as_utc(self):
        a, b = normalize("Oneshot", "Pilot"), normalize("Oneshot", "Pilot")

        assert should_merge(
            a,
            b,
            a_title="Pilot",
            b_title="Pilot",
            a_published=datetime(2026, 1, 1),
            b_published=datetime(2026, 1, 2, tzinfo=timezone.utc),
        )
        assert not should_merge(
            a,
            b,
            a_title="Pilot",
            b_title="Pilot",
            a_published=datetime(2026, 1, 1),
            b_published=datetime(2026, 1, 9, tzinfo=timezone.utc),
        )

    def test_offset_dates_compared_in_utc(self):
        a, b = normalize("Oneshot", "Pilot"), normalize("Oneshot", "Pilot")
        tokyo = timezone(timedelta(hours=9))

        assert should_merge(
            a,
            b,
            a_title="Pilot",
            b_title="Pilot",
            a_published=datetime(2026, 1, 4, 8, tzinfo=tokyo),
            b_published=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )

    def test_unnumbered_without_titles(self):
        assert not should_merge(normalize("Prologue"), normalize("Prologue"))
