"""Search escalation by attempt number.

Each retry searches a wider space: lower similarity threshold, more
candidates, fuzzier title variants. Everything is keyed by a single attempt
count so the schedule is monotone by construction.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class TitleVariation(str, Enum):
    NORMAL = "normal"
    SIMPLIFIED = "simplified"
    AGGRESSIVE = "aggressive"


@dataclass(frozen=True)
class SearchStrategy:
    """Search parameters for one resolution attempt.

    Attributes:
        name: Strategy label used in logs and stored errors
        similarity_threshold: Minimum similarity for a candidate to match
        max_candidates: Provider results considered per query
        use_fuzzy: Search title variants rather than the exact title only
        include_alternative_titles: Score candidates' alternative titles too
        title_variation: How aggressively titles are rewritten
        confidence: Multiplier applied to similarity for the review decision
    """

    name: str
    similarity_threshold: float
    max_candidates: int
    use_fuzzy: bool
    include_alternative_titles: bool
    title_variation: TitleVariation
    confidence: float


STRICT = SearchStrategy("strict", 0.85, 5, False, False, TitleVariation.NORMAL, 1.0)
RELAXED = SearchStrategy("relaxed", 0.75, 10, True, True, TitleVariation.NORMAL, 0.9)
SIMPLIFIED = SearchStrategy("simplified", 0.70, 15, True, True, TitleVariation.SIMPLIFIED, 0.85)
PERMISSIVE = SearchStrategy("permissive", 0.60, 20, True, True, TitleVariation.AGGRESSIVE, 0.75)


def get_search_strategy(attempt: int) -> SearchStrategy:
    """Strategy for a 1-based attempt number (values below 1 count as 1)."""
    if attempt <= 1:
        return STRICT
    if attempt == 2:
        return RELAXED
    if attempt == 3:
        return SIMPLIFIED
    return PERMISSIVE


_FORMAT_SUFFIX_RE = re.compile(r"\s*\((?:manga|manhwa|manhua|webtoon|novel|light novel)\)\s*$", re.IGNORECASE)
_BRACKET_SUFFIX_RE = re.compile(r"\s*\[[^\]]*\]\s*$")
_RAW_SUFFIX_RE = re.compile(r"\s*(?:-\s*)?\braw\s*$", re.IGNORECASE)
_LEADING_ARTICLE_RE = re.compile(r"^the\s+", re.IGNORECASE)
_TRAILING_NUMBER_RE = re.compile(r"\s+\d+\s*$")
_NON_ALNUM_RE = re.compile(r"[^a-zA-Z0-9\s]")
_WS_RE = re.compile(r"\s+")


def _clean(title: str) -> str:
    return _WS_RE.sub(" ", title).strip()


def generate_title_variants(title: str, variation: TitleVariation = TitleVariation.NORMAL) -> list[str]:
    """Search queries to try for ``title``, original first, without duplicates.

    Example:
        >>> generate_title_variants("The Hero Returns 2 (Manhwa)")
        ['The Hero Returns 2 (Manhwa)', 'The Hero Returns 2', 'Hero Returns 2', 'The Hero Returns']
    """
    title = _clean(title)
    if not title:
        return []

    variants = [title]

    stripped = title
    for pattern in (_FORMAT_SUFFIX_RE, _BRACKET_SUFFIX_RE, _RAW_SUFFIX_RE):
        stripped = pattern.sub("", stripped)
    stripped = _clean(stripped)
    if stripped:
        variants.append(stripped)

    without_article = _clean(_LEADING_ARTICLE_RE.sub("", stripped))
    if without_article:
        variants.append(without_article)

    without_number = _clean(_TRAILING_NUMBER_RE.sub("", stripped))
    if len(without_number) > 3:
        variants.append(without_number)

    if variation is TitleVariation.SIMPLIFIED:
        words = without_article.split()
        if len(words) > 3:
            variants.append(" ".join(words[:3]))
    elif variation is TitleVariation.AGGRESSIVE:
        alnum = _clean(_NON_ALNUM_RE.sub(" ", stripped))
        if alnum:
            variants.append(alnum)
        words = without_article.split()
        if len(words) > 3:
            variants.append(" ".join(words[:3]))

    seen: set[str] = set()
    unique = []
    for variant in variants:
        key = variant.lower()
        if key not in seen:
            seen.add(key)
            unique.append(variant)
    return unique
