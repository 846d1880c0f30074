"""Best cover selection across a series' sources."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse
from uuid import UUID

from chaptertrack_common import get_logger
from chaptertrack_contracts import SeriesSource
from chaptertrack_storage import SeriesSourceStore, SeriesStore

logger = get_logger(__name__)

# Lower is preferred; unknown sources rank after all of these
SOURCE_PRIORITY = {
    "mangadex": 1,
    "mangaplus": 2,
    "webtoons": 3,
    "asurascans": 4,
    "mangasee": 5,
}
_UNKNOWN_PRIORITY = 100

_PLACEHOLDER_MARKERS = ("placeholder", "no-image", "noimage", "no_cover", "default-cover", "missing")
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def is_valid_cover_url(url: Optional[str]) -> bool:
    """HTTPS URL with a host that does not look like a placeholder image."""
    if not url:
        return False
    parsed = urlparse(url)
    if parsed.scheme != "https" or not parsed.netloc:
        return False
    lowered = url.lower()
    return not any(marker in lowered for marker in _PLACEHOLDER_MARKERS)


def select_best_cover(sources: list[SeriesSource]) -> Optional[str]:
    """Pick the best cover URL among a series' sources.

    Order: sources flagged as primary cover, then fixed source priority, then
    most recently updated.
    """
    candidates = [s for s in sources if is_valid_cover_url(s.cover_url)]
    if not candidates:
        return None

    best = min(
        candidates,
        key=lambda s: (
            not s.is_primary_cover,
            SOURCE_PRIORITY.get(s.source_name.lower(), _UNKNOWN_PRIORITY),
            -(s.updated_at or _EPOCH).timestamp(),
        ),
    )
    return best.cover_url


async def update_series_best_cover(series_id: UUID) -> Optional[str]:
    """Recompute and store ``best_cover_url`` for a series."""
    sources = await SeriesSourceStore.list_for_series(series_id)
    cover = select_best_cover(sources)
    await SeriesStore.set_best_cover(series_id, cover)
    logger.debug("series_best_cover_updated", series_id=str(series_id), has_cover=cover is not None)
    return cover
