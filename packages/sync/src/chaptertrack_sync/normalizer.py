"""Chapter identity normalization.

Turns raw provider labels ("Chapter 10", "Ch. 10.0", "#10", "Side Story 3")
into a canonical, deterministic identity so the same chapter scraped from
different sources lands on one logical chapter.

Every function here is pure and total: malformed input degrades to an
unnumbered or "unknown" identity rather than raising.
"""

from __future__ import annotations

import hashlib
import re
import unicodedata
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from chaptertrack_contracts import ChapterType, NormalizedChapter

# Canonical string for chapters without a number
NO_NUMBER = "-1"

# Two unnumbered releases are the same chapter only if published this close
MERGE_WINDOW_SECONDS = 72 * 3600

_LABELLED_NUMBER_RE = re.compile(r"(?:\bchapter|\bchap|\bch\.?|\bepisode|\bep\.?|#)\s*(\d+(?:\.\d+)?)")
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
_SEASON_RE = re.compile(r"\bs\d+\b")
_EXTRA_MARKERS = ("extra", "bonus", "side story", "afterword")
_SPECIAL_MARKERS = ("special", "oneshot", "one-shot", "one shot", "omake", "prologue")
_TITLE_NOISE_RE = re.compile(r"[^\w\s]")
_WS_RE = re.compile(r"\s+")


def classify(label: str) -> ChapterType:
    """Chapter kind from marker words in the label."""
    text = label.lower()
    if any(marker in text for marker in _EXTRA_MARKERS):
        return ChapterType.EXTRA
    if any(marker in text for marker in _SPECIAL_MARKERS) or _SEASON_RE.search(text):
        return ChapterType.SPECIAL
    return ChapterType.NORMAL


def parse_number(label: str) -> Optional[Decimal]:
    """Chapter number from a raw label.

    A number following a chapter marker ("Vol. 3 Ch. 25" gives 25) wins;
    otherwise the first decimal number in the label is used.
    """
    text = label.strip().lower()
    match = _LABELLED_NUMBER_RE.search(text)
    if match:
        raw = match.group(1)
    else:
        match = _NUMBER_RE.search(text)
        if not match:
            return None
        raw = match.group(0)
    try:
        return Decimal(raw)
    except InvalidOperation:
        return None


def to_canonical_string(number: Optional[Decimal]) -> str:
    """Canonical text form of a chapter number.

    ``1``, ``1.0`` and ``1.00`` all become ``"1"``; ``1.50`` becomes ``"1.5"``;
    ``None`` becomes :data:`NO_NUMBER`. Re-parsing the output and formatting
    again yields the same string.
    """
    if number is None:
        return NO_NUMBER
    if not number.is_finite():
        return NO_NUMBER
    if number == number.to_integral_value():
        return str(int(number))
    return format(number.normalize(), "f")


def normalize_title(title: Optional[str]) -> str:
    if not title:
        return ""
    text = unicodedata.normalize("NFKC", title).lower()
    text = _TITLE_NOISE_RE.sub(" ", text)
    return _WS_RE.sub(" ", text).strip()


def title_hash(title: Optional[str]) -> Optional[str]:
    """Short stable hash of a normalized title, or None for empty titles."""
    normalized = normalize_title(title)
    if not normalized:
        return None
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:12]


def normalize(label: Optional[str], title: Optional[str] = None) -> NormalizedChapter:
    """Derive the canonical identity of a raw chapter label.

    Args:
        label: Raw label as scraped ("Chapter 10.5", "#10", "Extra 2")
        title: Chapter title, used for the slug when there is no number

    Returns:
        NormalizedChapter with number, type and slug
    """
    label = label or ""
    chapter_type = classify(label)
    number = parse_number(label)

    if number is not None:
        slug = f"{chapter_type.value}-{to_canonical_string(number)}"
    else:
        digest = title_hash(title)
        slug = f"{chapter_type.value}-{digest}" if digest else f"{chapter_type.value}-unknown"

    return NormalizedChapter(number=number, type=chapter_type, slug=slug)


def chapter_key(chapter: NormalizedChapter) -> str:
    """Value stored as LogicalChapter.chapter_number.

    Numbered normal chapters use the canonical number. Specials, extras and
    unnumbered chapters use the slug so they never collide with a numbered
    normal chapter.
    """
    if chapter.number is not None and chapter.type is ChapterType.NORMAL:
        return to_canonical_string(chapter.number)
    return chapter.slug


def should_merge(
    a: NormalizedChapter,
    b: NormalizedChapter,
    *,
    a_title: Optional[str] = None,
    b_title: Optional[str] = None,
    a_published: Optional[datetime] = None,
    b_published: Optional[datetime] = None,
) -> bool:
    """Whether two normalized chapters denote the same logical chapter."""
    if a.number is not None and b.number is not None:
        return a.number == b.number and a.type == b.type
    if a.number is not None or b.number is not None:
        return False

    hash_a, hash_b = title_hash(a_title), title_hash(b_title)
    if hash_a is None or hash_a != hash_b:
        return False
    if a_published is not None and b_published is not None:
        gap = _as_utc(a_published) - _as_utc(b_published)
        return abs(gap.total_seconds()) <= MERGE_WINDOW_SECONDS
    return True


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
