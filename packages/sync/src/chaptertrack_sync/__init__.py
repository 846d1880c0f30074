"""chaptertrack sync - chapter normalization and source synchronization.

This package provides:
- Chapter label normalization to canonical keys
- ChapterSynchronizer for folding scraped chapters into logical chapters
- Duplicate chapter repair
- Best cover selection
"""

from chaptertrack_sync.chapter_merge import MergeReport, canonical_key_for, merge_duplicate_chapters
from chaptertrack_sync.covers import is_valid_cover_url, select_best_cover, update_series_best_cover
from chaptertrack_sync.normalizer import (
    NO_NUMBER,
    chapter_key,
    classify,
    normalize,
    parse_number,
    should_merge,
    title_hash,
    to_canonical_string,
)
from chaptertrack_sync.synchronizer import (
    ActivityRecorder,
    ChapterSynchronizer,
    ScraperAdapter,
    SyncOptions,
)

__all__ = [
    "MergeReport",
    "canonical_key_for",
    "merge_duplicate_chapters",
    "is_valid_cover_url",
    "select_best_cover",
    "update_series_best_cover",
    "NO_NUMBER",
    "chapter_key",
    "classify",
    "normalize",
    "parse_number",
    "should_merge",
    "title_hash",
    "to_canonical_string",
    "ActivityRecorder",
    "ChapterSynchronizer",
    "ScraperAdapter",
    "SyncOptions",
]
