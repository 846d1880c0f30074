"""Metadata resolver.

Links a library entry to a canonical series using the external metadata
provider. One call handles one attempt:

1. Pre-check without locks (missing, already enriched, protected)
2. Serializable transaction holding the entry row (SKIP LOCKED)
3. Exact id from the entry URL, otherwise title search widened by attempt
4. Validate, score for review, upsert the series, link the entry

Transient provider failures are recorded and re-raised so the queue retries
with backoff. Anything else leaves the entry ``unavailable`` with a recovery
job scheduled.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional, Protocol
from uuid import UUID

import asyncpg
from chaptertrack_common import CandidateValidationError, Settings, get_logger, get_settings
from chaptertrack_contracts import LibraryEntry, MetadataCandidate, MetadataSource, MetadataStatus, Series
from chaptertrack_storage import (
    LibraryStore,
    SeriesSourceStore,
    SeriesStore,
    is_serialization_failure,
    run_serializable,
)

from chaptertrack_resolver.cache import MetadataCache
from chaptertrack_resolver.jobs import schedule_recovery
from chaptertrack_resolver.priority import reconcile_fields
from chaptertrack_resolver.progress import DuplicateOutcome, resolve_duplicate
from chaptertrack_resolver.review import calculate_review_decision
from chaptertrack_resolver.sanitize import is_transient_error, sanitize_error
from chaptertrack_resolver.similarity import candidate_similarity
from chaptertrack_resolver.strategy import SearchStrategy, generate_title_variants, get_search_strategy
from chaptertrack_resolver.validation import ensure_valid_candidate

logger = get_logger(__name__)

METADATA_SCHEMA_VERSION = 1

# Matches this similar (without review) also clear the retry history
RETRY_RESET_SIMILARITY = 0.85

_EXTERNAL_ID_RE = re.compile(
    r"mangadex\.org/(?:title|manga)/([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})",
    re.IGNORECASE,
)

_CANDIDATE_FIELDS = (
    "title",
    "alternative_titles",
    "description",
    "status",
    "year",
    "original_language",
    "genres",
    "cover_url",
)


class MetadataProvider(Protocol):
    """External metadata source (implemented by ``md_client.MDClient``)."""

    async def search(self, title: str, *, limit: int = 10) -> list[MetadataCandidate]: ...

    async def fetch_by_id(self, external_id: str) -> Optional[MetadataCandidate]: ...


class ResolutionOutcome(str, Enum):
    SKIPPED = "skipped"
    LOCKED = "locked"
    ENRICHED = "enriched"
    NO_MATCH = "no_match"
    MERGED_DUPLICATE = "merged_duplicate"
    DUPLICATE_REFUSED = "duplicate_refused"
    GUARD_REJECTED = "guard_rejected"
    UNAVAILABLE = "unavailable"


@dataclass
class ResolutionResult:
    outcome: ResolutionOutcome
    entry_id: UUID
    series_id: Optional[UUID] = None
    attempt: Optional[int] = None
    strategy: Optional[str] = None
    similarity: Optional[float] = None
    needs_review: bool = False
    reason: Optional[str] = None


@dataclass
class _Match:
    candidate: MetadataCandidate
    similarity: float
    exact_id: bool
    runner_up: Optional[float] = None


def extract_external_id(source_url: Optional[str]) -> Optional[str]:
    """Provider series id embedded in a provider URL, if any."""
    if not source_url:
        return None
    match = _EXTERNAL_ID_RE.search(source_url)
    return match.group(1).lower() if match else None


def rank_candidates(
    query: str, candidates: list[MetadataCandidate], strategy: SearchStrategy
) -> list[tuple[float, MetadataCandidate]]:
    """Score and order candidates, best first.

    Ties break on higher provider popularity, then smaller external id.
    """
    scored = [
        (candidate_similarity(query, c, include_alternative_titles=strategy.include_alternative_titles), c)
        for c in candidates[: strategy.max_candidates]
    ]
    scored.sort(key=lambda pair: (-pair[0], -pair[1].popularity, pair[1].external_id))
    return scored


def candidate_fields(candidate: MetadataCandidate) -> dict[str, Any]:
    return {name: getattr(candidate, name) for name in _CANDIDATE_FIELDS}


def is_protected(entry: LibraryEntry, series_source: Optional[MetadataSource] = None) -> bool:
    return (
        entry.manually_linked
        or entry.manual_override_at is not None
        or series_source is MetadataSource.USER_OVERRIDE
    )


class MetadataResolver:
    """Resolves library entries against a metadata provider.

    Args:
        provider: Metadata provider (search / fetch by id)
        cache: Candidate cache shared across resolutions in this process
        settings: Application settings (default: global settings)
        clock: Time source (UTC)
    """

    def __init__(
        self,
        provider: MetadataProvider,
        *,
        cache: Optional[MetadataCache] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.provider = provider
        self.settings = settings or get_settings()
        self.cache = cache or MetadataCache(
            ttl_seconds=self.settings.metadata_cache_ttl_seconds,
            max_entries=self.settings.metadata_cache_max_entries,
        )
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def resolve(self, entry_id: UUID) -> ResolutionResult:
        """Run one resolution attempt for a library entry.

        Raises:
            Exception: Transient failures (rate limit, network, 5xx, timeouts,
                exhausted serialization retries), after recording them
        """
        entry = await LibraryStore.get(entry_id)
        if entry is None:
            return ResolutionResult(ResolutionOutcome.SKIPPED, entry_id, reason="missing")
        if entry.metadata_status is MetadataStatus.ENRICHED and not entry.needs_review:
            return ResolutionResult(ResolutionOutcome.SKIPPED, entry_id, reason="already_enriched")

        series_source = None
        if entry.series_id is not None:
            series = await SeriesStore.get(entry.series_id)
            series_source = series.metadata_source if series else None
        if is_protected(entry, series_source):
            logger.info("resolution_skipped_protected", entry_id=str(entry_id))
            return ResolutionResult(ResolutionOutcome.SKIPPED, entry_id, reason="protected")

        attempt = entry.metadata_retry_count + 1
        try:
            result = await run_serializable(lambda conn: self._resolve_locked(conn, entry_id))
        except Exception as e:
            return await self._handle_failure(entry_id, attempt, e)

        if result.outcome is ResolutionOutcome.NO_MATCH:
            await schedule_recovery(entry_id, result.attempt or attempt, self.clock(), settings=self.settings)

        logger.info(
            "resolution_finished",
            entry_id=str(entry_id),
            outcome=result.outcome.value,
            attempt=result.attempt,
            strategy=result.strategy,
            similarity=result.similarity,
            needs_review=result.needs_review,
        )
        return result

    async def _handle_failure(self, entry_id: UUID, attempt: int, error: Exception) -> ResolutionResult:
        now = self.clock()
        message = sanitize_error(error)

        if is_transient_error(error) or is_serialization_failure(error):
            logger.warning("resolution_transient_failure", entry_id=str(entry_id), attempt=attempt, error=message)
            await LibraryStore.record_transient_failure(entry_id, attempt, message, now)
            raise error

        logger.error("resolution_failed", entry_id=str(entry_id), attempt=attempt, error=message)
        await LibraryStore.record_permanent_failure(entry_id, MetadataStatus.UNAVAILABLE, attempt, message, now)
        await schedule_recovery(entry_id, attempt, now, settings=self.settings)
        return ResolutionResult(ResolutionOutcome.UNAVAILABLE, entry_id, attempt=attempt, reason=message)

    async def _resolve_locked(self, conn: asyncpg.Connection, entry_id: UUID) -> ResolutionResult:
        entry = await LibraryStore.lock_for_resolution(conn, entry_id)
        if entry is None:
            logger.debug("resolution_entry_locked", entry_id=str(entry_id))
            return ResolutionResult(ResolutionOutcome.LOCKED, entry_id)

        current_series: Optional[Series] = None
        if entry.series_id is not None:
            current_series = await SeriesStore.get_for_update(conn, entry.series_id)
        if is_protected(entry, current_series.metadata_source if current_series else None):
            return ResolutionResult(ResolutionOutcome.SKIPPED, entry_id, reason="protected")
        if entry.metadata_status is MetadataStatus.ENRICHED and not entry.needs_review:
            return ResolutionResult(ResolutionOutcome.SKIPPED, entry_id, reason="already_enriched")

        now = self.clock()
        attempt = entry.metadata_retry_count + 1
        strategy = get_search_strategy(attempt)
        logger.info(
            "resolution_attempt",
            entry_id=str(entry_id),
            attempt=attempt,
            strategy=strategy.name,
            threshold=strategy.similarity_threshold,
        )

        match = await self._find_match(entry, strategy)
        if match is not None:
            try:
                ensure_valid_candidate(match.candidate)
            except CandidateValidationError as e:
                logger.warning(
                    "candidate_validation_failed",
                    entry_id=str(entry_id),
                    external_id=match.candidate.external_id,
                    errors=e.errors,
                )
                match = None

        if match is None:
            error = f"No match found (attempt {attempt}, strategy: {strategy.name})"
            await LibraryStore.mark_unavailable(conn, entry.id, attempt, error, now)
            return ResolutionResult(
                ResolutionOutcome.NO_MATCH, entry_id, attempt=attempt, strategy=strategy.name, reason=error
            )

        review = calculate_review_decision(
            match.similarity,
            strategy_confidence=strategy.confidence,
            exact_id_match=match.exact_id,
            runner_up_similarity=match.runner_up,
            expected_language=current_series.original_language if current_series else None,
            candidate_language=match.candidate.original_language,
            expected_year=current_series.year if current_series else None,
            candidate_year=match.candidate.year,
        )
        if review.factors:
            logger.info(
                "resolution_review_decision",
                entry_id=str(entry_id),
                factors=review.factors,
                confidence=review.confidence,
                needs_review=review.needs_review,
            )

        series = await self._upsert_series(conn, match.candidate, review.confidence)
        result = ResolutionResult(
            ResolutionOutcome.ENRICHED,
            entry_id,
            series_id=series.id,
            attempt=attempt,
            strategy=strategy.name,
            similarity=match.similarity,
            needs_review=review.needs_review,
        )

        if entry.series_id is not None and entry.series_id != series.id:
            logger.warning(
                "resolution_referential_guard",
                entry_id=str(entry_id),
                current_series_id=str(entry.series_id),
                target_series_id=str(series.id),
            )
            result.outcome = ResolutionOutcome.GUARD_REJECTED
            result.reason = "entry bound to a different series"
            return result

        duplicate = await LibraryStore.find_live_duplicate(conn, entry.user_id, series.id, entry.id)
        if duplicate is not None:
            outcome = await resolve_duplicate(conn, entry, duplicate, now)
            if outcome is DuplicateOutcome.MERGED:
                await SeriesSourceStore.relink_by_url(conn, entry.source_url, series.id)
                result.outcome = ResolutionOutcome.MERGED_DUPLICATE
            else:
                result.outcome = ResolutionOutcome.DUPLICATE_REFUSED
            return result

        reset_retry = not review.needs_review and match.similarity >= RETRY_RESET_SIMILARITY
        linked = await LibraryStore.mark_enriched(
            conn, entry.id, series.id, entry.source_url, review.needs_review, reset_retry, now
        )
        if not linked:
            result.outcome = ResolutionOutcome.GUARD_REJECTED
            result.reason = "entry changed during resolution"
            return result

        await SeriesSourceStore.relink_by_url(conn, entry.source_url, series.id)
        return result

    async def _find_match(self, entry: LibraryEntry, strategy: SearchStrategy) -> Optional[_Match]:
        external_id = extract_external_id(entry.source_url)
        if external_id:
            candidate = await self._fetch_cached(external_id)
            if candidate is not None:
                return _Match(candidate, 1.0, exact_id=True)

        title = (entry.imported_title or "").strip()
        if not title:
            return None

        queries = generate_title_variants(title, strategy.title_variation) if strategy.use_fuzzy else [title]
        for query in queries:
            candidates = await self.provider.search(query, limit=strategy.max_candidates)
            ranked = rank_candidates(title, candidates, strategy)
            if not ranked or ranked[0][0] < strategy.similarity_threshold:
                continue

            similarity, best = ranked[0]
            self.cache.set(best)
            runner_up = ranked[1][0] if len(ranked) > 1 else None
            return _Match(best, similarity, exact_id=False, runner_up=runner_up)

        return None

    async def _fetch_cached(self, external_id: str) -> Optional[MetadataCandidate]:
        candidate = self.cache.get(external_id)
        if candidate is None:
            candidate = await self.provider.fetch_by_id(external_id)
            if candidate is not None:
                self.cache.set(candidate)
        return candidate

    async def _upsert_series(self, conn: asyncpg.Connection, candidate: MetadataCandidate, confidence: float) -> Series:
        incoming = candidate_fields(candidate)
        existing = await SeriesStore.get_by_external_id(conn, candidate.external_id)

        if existing is None:
            return await SeriesStore.create(
                conn,
                {
                    **incoming,
                    "external_id": candidate.external_id,
                    "metadata_source": MetadataSource.CANONICAL,
                    "metadata_confidence": confidence,
                    "metadata_schema_version": METADATA_SCHEMA_VERSION,
                },
            )

        if existing.metadata_source is MetadataSource.USER_OVERRIDE:
            return existing

        current = existing.model_dump(include=set(incoming))
        changes = reconcile_fields(current, existing.metadata_source, incoming, MetadataSource.CANONICAL)
        if changes or existing.metadata_schema_version < METADATA_SCHEMA_VERSION:
            changes["metadata_schema_version"] = METADATA_SCHEMA_VERSION
            changes["metadata_confidence"] = confidence
            await SeriesStore.update_metadata(conn, existing.id, changes)
        return existing

    async def recover(self, entry_id: UUID) -> ResolutionResult:
        """Run a scheduled recovery: reset the entry to pending and resolve it."""
        if not await LibraryStore.reset_for_recovery(entry_id):
            logger.info("recovery_skipped", entry_id=str(entry_id))
            return ResolutionResult(ResolutionOutcome.SKIPPED, entry_id, reason="not_recoverable")
        return await self.resolve(entry_id)

    async def mark_exhausted(self, entry_id: UUID, error: str) -> None:
        """Queue gave up on the entry's resolution job."""
        message = sanitize_error(error)
        await LibraryStore.record_permanent_failure(entry_id, MetadataStatus.FAILED, None, message, self.clock())
        logger.error("resolution_exhausted", entry_id=str(entry_id), error=message)
