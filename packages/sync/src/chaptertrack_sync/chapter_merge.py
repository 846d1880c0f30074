"""Offline repair of duplicate logical chapters.

Rows written before normalization was canonical ("10.0", "Ch. 10") can
coexist with the canonical "10". This pass re-derives every live chapter's
key, keeps one row per key, and moves source links onto it.
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from chaptertrack_common import StorageError, get_logger
from chaptertrack_storage import ChapterStore, get_connection_pool

from chaptertrack_sync.normalizer import chapter_key, normalize

logger = get_logger(__name__)

_SLUG_KEY_RE = re.compile(r"^(normal|special|extra)-")


@dataclass
class MergeReport:
    series_id: UUID
    groups_merged: int = 0
    chapters_deleted: int = 0
    links_moved: int = 0
    renumbered: int = 0
    dry_run: bool = False
    details: list[dict[str, Any]] = field(default_factory=list)


def canonical_key_for(stored_key: str, title: Optional[str] = None) -> str:
    """Canonical key for an existing row's ``chapter_number``.

    Slug-shaped keys are already canonical and are kept as-is.
    """
    if _SLUG_KEY_RE.match(stored_key):
        return stored_key
    return chapter_key(normalize(stored_key, title))


def _pick_primary(rows: list[dict[str, Any]]) -> dict[str, Any]:
    """Most source links wins, ties go to the earliest seen."""
    return min(rows, key=lambda r: (-int(r["link_count"]), r["first_seen_at"]))


async def merge_duplicate_chapters(
    series_id: UUID,
    *,
    dry_run: bool = False,
    now: Optional[datetime] = None,
) -> MergeReport:
    """Collapse live chapters of a series that share a canonical key.

    Runs in a single transaction. With ``dry_run`` the plan is computed and
    reported but nothing is written.

    Raises:
        StorageError: If the merge transaction fails
    """
    now = now or datetime.now(timezone.utc)
    report = MergeReport(series_id=series_id, dry_run=dry_run)
    pool = await get_connection_pool()

    try:
        async with pool.acquire() as conn:
            async with conn.transaction():
                rows = await ChapterStore.list_live_with_link_counts(conn, series_id)

                groups: dict[str, list[dict[str, Any]]] = defaultdict(list)
                for row in rows:
                    groups[canonical_key_for(row["chapter_number"], row.get("title"))].append(row)

                for key, members in groups.items():
                    primary = _pick_primary(members)
                    duplicates = [m for m in members if m["id"] != primary["id"]]

                    if duplicates:
                        report.groups_merged += 1
                        report.details.append(
                            {
                                "key": key,
                                "primary": str(primary["id"]),
                                "merged": [str(d["id"]) for d in duplicates],
                            }
                        )
                        if not dry_run:
                            for duplicate in duplicates:
                                report.links_moved += await ChapterStore.transfer_links(
                                    conn, duplicate["id"], primary["id"]
                                )
                                await ChapterStore.soft_delete(conn, duplicate["id"], now)
                        report.chapters_deleted += len(duplicates)

                    if primary["chapter_number"] == key:
                        continue

                    report.renumbered += 1
                    if dry_run:
                        continue
                    if await ChapterStore.key_in_use(conn, series_id, key, primary["id"]):
                        # Another live row already holds the key; this one is redundant
                        report.links_moved += await ChapterStore.transfer_links(conn, primary["id"], _owner_id(rows, key))
                        await ChapterStore.soft_delete(conn, primary["id"], now)
                        report.chapters_deleted += 1
                    else:
                        slug = key if _SLUG_KEY_RE.match(key) else normalize(key).slug
                        await ChapterStore.renumber(conn, primary["id"], key, slug)

    except Exception as e:
        logger.error("chapter_merge_failed", series_id=str(series_id), error=str(e))
        raise StorageError(f"Failed to merge chapters for series {series_id}: {e}") from e

    logger.info(
        "chapter_merge_completed",
        series_id=str(series_id),
        groups=report.groups_merged,
        deleted=report.chapters_deleted,
        links_moved=report.links_moved,
        renumbered=report.renumbered,
        dry_run=dry_run,
    )
    return report


def _owner_id(rows: list[dict[str, Any]], key: str) -> UUID:
    for row in rows:
        if row["chapter_number"] == key:
            return row["id"]
    raise StorageError(f"No live chapter owns key {key}")
