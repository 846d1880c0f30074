"""chaptertrack resolver - metadata resolution for library entries.

This package provides:
- MetadataResolver: one resolution attempt per call, with recovery and exhaustion handling
- Search escalation by attempt (strategy, title variants)
- Title similarity, candidate validation and review decisions
- Metadata source priority reconciliation
- Resolution / recovery job scheduling and periodic healing
"""

from chaptertrack_resolver.cache import MetadataCache
from chaptertrack_resolver.healing import run_metadata_healing
from chaptertrack_resolver.jobs import (
    RECOVER_JOB,
    RESOLUTION_QUEUE,
    RESOLVE_JOB,
    enqueue_resolution,
    recovery_delay,
    schedule_recovery,
)
from chaptertrack_resolver.priority import SOURCE_PRIORITY, reconcile_fields
from chaptertrack_resolver.progress import merge_progress, normalize_progress
from chaptertrack_resolver.resolver import (
    MetadataProvider,
    MetadataResolver,
    ResolutionOutcome,
    ResolutionResult,
    extract_external_id,
)
from chaptertrack_resolver.review import ReviewDecision, calculate_review_decision
from chaptertrack_resolver.sanitize import is_transient_error, sanitize_error
from chaptertrack_resolver.similarity import calculate_similarity
from chaptertrack_resolver.strategy import SearchStrategy, generate_title_variants, get_search_strategy
from chaptertrack_resolver.validation import validate_candidate

__all__ = [
    "MetadataCache",
    "run_metadata_healing",
    "RECOVER_JOB",
    "RESOLUTION_QUEUE",
    "RESOLVE_JOB",
    "enqueue_resolution",
    "recovery_delay",
    "schedule_recovery",
    "SOURCE_PRIORITY",
    "reconcile_fields",
    "merge_progress",
    "normalize_progress",
    "MetadataProvider",
    "MetadataResolver",
    "ResolutionOutcome",
    "ResolutionResult",
    "extract_external_id",
    "ReviewDecision",
    "calculate_review_decision",
    "is_transient_error",
    "sanitize_error",
    "calculate_similarity",
    "SearchStrategy",
    "generate_title_variants",
    "get_search_strategy",
    "validate_candidate",
]
