"""Activity engine: event recording, score refresh and tier maintenance."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import UUID

from chaptertrack_common import get_logger
from chaptertrack_contracts import ActivityEvent, ActivityEventType, CatalogTier
from chaptertrack_storage import ActivityStore, SeriesStore, run_serializable

from chaptertrack_activity.scoring import (
    RECENT_CHAPTER_WINDOW,
    STALE_AFTER,
    TIER_A_INACTIVE_AFTER,
    TierDecision,
    activity_score,
    evaluate_promotion,
    event_weight,
)

logger = get_logger(__name__)

DEMOTION_REASON = "stale_demoted"


@dataclass
class DemotionReport:
    refreshed: int = 0
    refresh_failures: int = 0
    demoted: list[UUID] = field(default_factory=list)


class ActivityEngine:
    """Records activity and keeps ``activity_score`` / ``catalog_tier`` current.

    Args:
        clock: Time source (UTC)
        on_tier_change: Optional callback invoked with (series_id, decision)
    """

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        on_tier_change: Optional[Callable[[UUID, TierDecision], None]] = None,
    ):
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.on_tier_change = on_tier_change

    async def record_event(
        self,
        series_id: UUID,
        event_type: ActivityEventType,
        *,
        source_name: Optional[str] = None,
        chapter_id: Optional[UUID] = None,
        user_id: Optional[UUID] = None,
        refresh: bool = True,
    ) -> None:
        """Append an event and bump ``last_activity_at``.

        With ``refresh=False`` the caller is responsible for calling
        :meth:`refresh_activity_score` once after a batch.
        """
        now = self.clock()
        event = ActivityEvent(
            series_id=series_id,
            event_type=event_type,
            weight=event_weight(event_type),
            source_name=source_name,
            chapter_id=chapter_id,
            user_id=user_id,
            occurred_at=now,
        )
        async def write(conn):
            await ActivityStore.insert(event, conn=conn)
            await SeriesStore.touch_activity([series_id], now, conn=conn)

        await run_serializable(write, isolation="read_committed")

        logger.debug("activity_event_recorded", series_id=str(series_id), event_type=event_type.value)
        if refresh:
            await self.refresh_activity_score(series_id)

    async def refresh_activity_score(self, series_id: UUID) -> Optional[float]:
        """Recompute the full score from stored inputs and apply promotions.

        Returns:
            The new score, or None if the series does not exist
        """
        now = self.clock()
        inputs = await SeriesStore.get_score_inputs(series_id, now - RECENT_CHAPTER_WINDOW)
        if inputs is None:
            logger.warning("activity_refresh_series_missing", series_id=str(series_id))
            return None

        score = activity_score(inputs, now)
        if score != inputs.get("activity_score"):
            await SeriesStore.set_activity_score(series_id, score)

        decision = evaluate_promotion(
            CatalogTier(inputs["catalog_tier"]),
            score,
            int(inputs.get("total_follows") or 0),
            bool(inputs.get("has_recent_chapter")),
            bool(inputs.get("in_curated_list")),
        )
        if decision is not None:
            await SeriesStore.set_tier(series_id, decision.tier, decision.reason, now)
            logger.info(
                "series_tier_promoted",
                series_id=str(series_id),
                tier=decision.tier.value,
                reason=decision.reason,
                score=score,
            )
            if self.on_tier_change is not None:
                self.on_tier_change(series_id, decision)

        return score

    async def run_tier_demotion_check(self, now: Optional[datetime] = None) -> DemotionReport:
        """Refresh stale series and demote long-inactive tier A series to B."""
        now = now or self.clock()
        report = DemotionReport()

        for series_id in await SeriesStore.list_stale_scored(now - STALE_AFTER):
            try:
                await self.refresh_activity_score(series_id)
                report.refreshed += 1
            except Exception as e:
                report.refresh_failures += 1
                logger.error("activity_refresh_failed", series_id=str(series_id), error=str(e))

        report.demoted = await SeriesStore.demote_inactive_tier_a(now - TIER_A_INACTIVE_AFTER, DEMOTION_REASON)
        if self.on_tier_change is not None:
            for series_id in report.demoted:
                self.on_tier_change(series_id, TierDecision(CatalogTier.B, DEMOTION_REASON))

        logger.info(
            "tier_demotion_check_completed",
            refreshed=report.refreshed,
            failures=report.refresh_failures,
            demoted=len(report.demoted),
        )
        return report
