"""Candidate validation before any write."""

from __future__ import annotations

from urllib.parse import urlparse

from chaptertrack_common import CandidateValidationError
from chaptertrack_contracts import MetadataCandidate


def validate_candidate(candidate: MetadataCandidate, *, authoritative: bool = True) -> list[str]:
    """Problems that make ``candidate`` unusable. Empty means valid.

    Args:
        candidate: Provider candidate
        authoritative: Whether the match came from the authoritative provider,
            in which case an external id is mandatory
    """
    errors = []
    if authoritative and not (candidate.external_id or "").strip():
        errors.append("missing external id")
    if not (candidate.title or "").strip():
        errors.append("missing title")
    if candidate.cover_url:
        parsed = urlparse(candidate.cover_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            errors.append(f"malformed cover url: {candidate.cover_url[:100]}")
    return errors


def ensure_valid_candidate(candidate: MetadataCandidate, *, authoritative: bool = True) -> None:
    """Raises:
    CandidateValidationError: If the candidate fails validation
    """
    errors = validate_candidate(candidate, authoritative=authoritative)
    if errors:
        raise CandidateValidationError(errors)
