"""Whether a resolved match should be flagged for human review."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional

REVIEW_CONFIDENCE_THRESHOLD = 0.75
LOW_SIMILARITY = 0.70
AMBIGUITY_MARGIN = 0.05
MAX_YEAR_DRIFT = 2

LANGUAGE_PENALTY = 0.10
YEAR_PENALTY = 0.10
AMBIGUITY_PENALTY = 0.05

_LANGUAGE_ALIASES = {
    "en": {"en", "english", "eng"},
    "ja": {"ja", "japanese", "jpn", "jp"},
    "ko": {"ko", "korean", "kor", "kr"},
    "zh": {"zh", "chinese", "chi", "cn", "zhtw", "zhhk", "zhhans", "zhhant"},
}


@dataclass
class ReviewDecision:
    needs_review: bool
    confidence: float
    factors: list[str] = field(default_factory=list)


def languages_compatible(a: Optional[str], b: Optional[str]) -> bool:
    """Unknown languages are compatible with anything."""
    if not a or not b:
        return True
    norm_a = re.sub(r"[^a-z]", "", a.lower())
    norm_b = re.sub(r"[^a-z]", "", b.lower())
    if norm_a == norm_b:
        return True
    return any(norm_a in names and norm_b in names for names in _LANGUAGE_ALIASES.values())


def calculate_review_decision(
    similarity: float,
    *,
    strategy_confidence: float = 1.0,
    exact_id_match: bool = False,
    runner_up_similarity: Optional[float] = None,
    expected_language: Optional[str] = None,
    candidate_language: Optional[str] = None,
    expected_year: Optional[int] = None,
    candidate_year: Optional[int] = None,
) -> ReviewDecision:
    """Combine match signals into a review decision.

    An exact external-id match never needs review. Otherwise confidence is
    ``similarity * strategy_confidence`` minus penalties; review is required
    below 0.75 confidence or when two or more warning factors apply.
    """
    if exact_id_match:
        return ReviewDecision(needs_review=False, confidence=1.0, factors=["exact_id_match"])

    factors = []
    confidence = similarity * strategy_confidence

    if similarity < LOW_SIMILARITY:
        factors.append("low_similarity")

    if runner_up_similarity is not None and similarity - runner_up_similarity <= AMBIGUITY_MARGIN:
        confidence -= AMBIGUITY_PENALTY
        factors.append("ambiguous_match")

    if not languages_compatible(expected_language, candidate_language):
        confidence -= LANGUAGE_PENALTY
        factors.append("language_mismatch")

    if expected_year and candidate_year and abs(expected_year - candidate_year) > MAX_YEAR_DRIFT:
        confidence -= YEAR_PENALTY
        factors.append("year_drift")

    confidence = max(0.0, round(confidence, 4))
    needs_review = confidence < REVIEW_CONFIDENCE_THRESHOLD or len(factors) >= 2
    return ReviewDecision(needs_review=needs_review, confidence=confidence, factors=factors)
