"""Title similarity scoring.

Sørensen–Dice coefficient over character bigrams of a normalized title, plus
a small bonus for shared word tokens. Scores are in [0, 1].
"""

from __future__ import annotations

import re
import unicodedata
from typing import Iterable, Optional

from chaptertrack_contracts import MetadataCandidate

STOP_WORDS = frozenset(
    """
    the a an no wa ga wo ni e de to ya ka
    manga manhwa manhua comic webtoon new raw official scan scanlation
    of in on at for with by from as and or but
    i my me we our you your he she it they their
    """.split()
)

TOKEN_BONUS = 0.2

_BRACKETS_RE = re.compile(r"[\[\(\{【「『].*?[\]\)\}】」』]")
_NON_WORD_RE = re.compile(r"[^\w\s]")
_WS_RE = re.compile(r"\s+")


def normalize_for_similarity(title: Optional[str]) -> list[str]:
    """Lowercase, NFKC-folded tokens with bracketed text and stop words removed."""
    if not title:
        return []
    text = unicodedata.normalize("NFKC", title).lower()
    text = _BRACKETS_RE.sub(" ", text)
    text = _NON_WORD_RE.sub(" ", text)
    tokens = [t for t in _WS_RE.split(text) if t]
    kept = [t for t in tokens if t not in STOP_WORDS]
    # A title made only of stop words ("The One") still needs something to compare
    return kept or tokens


def _bigrams(text: str) -> set[str]:
    if len(text) < 2:
        return {text} if text else set()
    return {text[i : i + 2] for i in range(len(text) - 1)}


def calculate_similarity(a: Optional[str], b: Optional[str]) -> float:
    """Similarity of two titles in [0, 1]."""
    tokens_a, tokens_b = normalize_for_similarity(a), normalize_for_similarity(b)
    if not tokens_a or not tokens_b:
        return 0.0
    if tokens_a == tokens_b:
        return 1.0

    bigrams_a, bigrams_b = _bigrams("".join(tokens_a)), _bigrams("".join(tokens_b))
    if not bigrams_a or not bigrams_b:
        return 0.0
    dice = 2 * len(bigrams_a & bigrams_b) / (len(bigrams_a) + len(bigrams_b))

    set_a, set_b = set(tokens_a), set(tokens_b)
    overlap = len(set_a & set_b) / max(len(set_a), len(set_b))
    return min(1.0, dice + TOKEN_BONUS * overlap)


def candidate_similarity(
    query: str,
    candidate: MetadataCandidate,
    *,
    include_alternative_titles: bool = True,
    exact_external_id: Optional[str] = None,
) -> float:
    """Best similarity between ``query`` and a candidate's titles.

    A candidate whose external id equals ``exact_external_id`` scores 1.0.
    """
    if exact_external_id and candidate.external_id == exact_external_id:
        return 1.0
    titles: Iterable[str] = [candidate.title]
    if include_alternative_titles:
        titles = [candidate.title, *candidate.alternative_titles]
    return max((calculate_similarity(query, t) for t in titles), default=0.0)
