"""chaptertrack activity - engagement scoring and catalog tiers.

This package provides:
- ActivityEngine: event recording, full score refresh, tier promotion/demotion
- ImpressionBuffer: batched search impressions
- Pure scoring and tier rules
"""

from chaptertrack_activity.engine import ActivityEngine, DemotionReport
from chaptertrack_activity.impressions import ImpressionBuffer
from chaptertrack_activity.scoring import (
    EVENT_WEIGHTS,
    TierDecision,
    activity_score,
    decay_factor,
    engagement,
    evaluate_promotion,
    event_weight,
)

__all__ = [
    "ActivityEngine",
    "DemotionReport",
    "ImpressionBuffer",
    "EVENT_WEIGHTS",
    "TierDecision",
    "activity_score",
    "decay_factor",
    "engagement",
    "evaluate_promotion",
    "event_weight",
]
