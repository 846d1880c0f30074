"""Reading progress merge for duplicate library entries.

When resolution discovers that a user already tracks the matched series
through another entry, the two are folded together: the surviving entry keeps
the higher progress and the resolving entry is soft-deleted, unless deleting
it would lose information.
"""

from __future__ import annotations

import math
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal
from enum import Enum
from typing import Optional, Union

import asyncpg
from chaptertrack_common import MergeRefusedError, get_logger
from chaptertrack_contracts import LibraryEntry
from chaptertrack_storage import LibraryStore

logger = get_logger(__name__)

_HUNDREDTH = Decimal("0.01")


class DuplicateOutcome(str, Enum):
    MERGED = "merged"
    REFUSED = "refused"


def normalize_progress(value: Optional[Union[Decimal, float, int]]) -> Decimal:
    """Progress floored to two decimals and clamped at zero; missing or NaN is 0."""
    if value is None:
        return Decimal("0")
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return Decimal("0")
        value = Decimal(str(value))
    value = Decimal(value)
    if not value.is_finite():
        return Decimal("0")
    return max(Decimal("0"), value.quantize(_HUNDREDTH, rounding=ROUND_FLOOR))


def merge_progress(
    existing: Optional[Union[Decimal, float, int]], incoming: Optional[Union[Decimal, float, int]]
) -> Decimal:
    return max(normalize_progress(existing), normalize_progress(incoming))


def check_deletion_allowed(loser: LibraryEntry, survivor: LibraryEntry) -> None:
    """Raises:
    MergeRefusedError: If deleting ``loser`` would drop progress or a manual link
    """
    if loser.manually_linked or loser.manual_override_at is not None:
        raise MergeRefusedError(f"Entry {loser.id} is manually linked")
    if normalize_progress(loser.last_read_chapter) > normalize_progress(survivor.last_read_chapter):
        raise MergeRefusedError(f"Entry {loser.id} has more progress than duplicate {survivor.id}")


async def resolve_duplicate(
    conn: asyncpg.Connection,
    entry: LibraryEntry,
    duplicate: LibraryEntry,
    now: datetime,
) -> DuplicateOutcome:
    """Fold ``entry`` into ``duplicate`` inside the caller's transaction.

    The duplicate always receives the merged progress. ``entry`` is
    soft-deleted, or, when deletion is refused, left in place as
    ``unavailable`` with ``needs_review`` set.
    """
    merged = merge_progress(duplicate.last_read_chapter, entry.last_read_chapter)
    if merged > normalize_progress(duplicate.last_read_chapter):
        await LibraryStore.set_progress(conn, duplicate.id, merged)

    try:
        check_deletion_allowed(entry, duplicate)
    except MergeRefusedError as e:
        logger.warning(
            "duplicate_merge_refused",
            entry_id=str(entry.id),
            duplicate_id=str(duplicate.id),
            reason=str(e),
        )
        await LibraryStore.mark_unavailable(
            conn,
            entry.id,
            entry.metadata_retry_count,
            f"Duplicate entry exists: {duplicate.id}",
            now,
            needs_review=True,
        )
        return DuplicateOutcome.REFUSED

    await LibraryStore.soft_delete(conn, entry.id, now)
    logger.info(
        "duplicate_entry_merged",
        entry_id=str(entry.id),
        duplicate_id=str(duplicate.id),
        progress=str(merged),
    )
    return DuplicateOutcome.MERGED
