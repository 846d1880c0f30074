"""Activity score and tier rules.

Pure functions over the inputs loaded by ``SeriesStore.get_score_inputs``.
Months are fixed 30-day units.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from chaptertrack_contracts import ActivityEventType, CatalogTier

EVENT_WEIGHTS: dict[ActivityEventType, int] = {
    ActivityEventType.CHAPTER_DETECTED: 1,
    ActivityEventType.CHAPTER_SOURCE_ADDED: 2,
    ActivityEventType.SEARCH_IMPRESSION: 5,
    ActivityEventType.CHAPTER_READ: 50,
    ActivityEventType.SERIES_FOLLOWED: 100,
}

FOLLOW_WEIGHT = 1.0
LIBRARY_WEIGHT = 2.0
WEEKLY_READER_WEIGHT = 0.5

MONTH = timedelta(days=30)

# Tier thresholds
RECENT_CHAPTER_WINDOW = timedelta(days=30)
TIER_A_SCORE = 5000.0
TIER_A_READERS = 10
TIER_B_SCORE = 1000.0
TIER_B_READERS = 1

# Demotion
STALE_AFTER = timedelta(days=7)
TIER_A_INACTIVE_AFTER = timedelta(days=90)


@dataclass(frozen=True)
class TierDecision:
    tier: CatalogTier
    reason: str


def event_weight(event_type: ActivityEventType) -> int:
    return EVENT_WEIGHTS[event_type]


def engagement(inputs: dict[str, Any]) -> float:
    return (
        float(inputs.get("event_weight") or 0)
        + (inputs.get("total_follows") or 0) * FOLLOW_WEIGHT
        + (inputs.get("library_count") or 0) * LIBRARY_WEIGHT
        + (inputs.get("weekly_readers") or 0) * WEEKLY_READER_WEIGHT
    )


def decay_factor(
    last_chapter_at: Optional[datetime],
    last_activity_at: Optional[datetime],
    now: datetime,
) -> float:
    """Score multiplier for series that stopped publishing.

    1.0 while chapters keep coming; 0.5 after 12 months without a chapter;
    0.1 after 24 months; 0.0 when the series has also had no activity for
    6 months. A series that never had a chapter is not decayed.
    """
    if last_chapter_at is None:
        return 1.0
    since_chapter = now - last_chapter_at
    if since_chapter >= 24 * MONTH:
        if last_activity_at is None or now - last_activity_at >= 6 * MONTH:
            return 0.0
        return 0.1
    if since_chapter >= 12 * MONTH:
        return 0.5
    return 1.0


def activity_score(inputs: dict[str, Any], now: datetime) -> float:
    """``engagement * decay_factor``, rounded to 2 decimals."""
    factor = decay_factor(inputs.get("last_chapter_at"), inputs.get("last_activity_at"), now)
    return round(engagement(inputs) * factor, 2)


def evaluate_promotion(
    current: CatalogTier,
    score: float,
    readers: int,
    has_recent_chapter: bool,
    in_curated_list: bool,
) -> Optional[TierDecision]:
    """Tier the series qualifies for, if higher than ``current``.

    Never demotes. B is only reachable from C.
    """
    if current is not CatalogTier.A:
        if has_recent_chapter:
            return TierDecision(CatalogTier.A, "recent_chapter")
        if score >= TIER_A_SCORE:
            return TierDecision(CatalogTier.A, "high_engagement")
        if readers >= TIER_A_READERS:
            return TierDecision(CatalogTier.A, "popular")
        if in_curated_list:
            return TierDecision(CatalogTier.A, "curated_list")

    if current is CatalogTier.C and (score >= TIER_B_SCORE or readers >= TIER_B_READERS):
        return TierDecision(CatalogTier.B, "user_relevant")
    return None
