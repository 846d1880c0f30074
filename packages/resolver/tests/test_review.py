"""Tests for candidate validation and review decisions."""

import pytest

from chaptertrack_common import CandidateValidationError
from chaptertrack_contracts import MetadataCandidate
from chaptertrack_resolver.review import calculate_review_decision, languages_compatible
from chaptertrack_resolver.validation import ensure_valid_candidate, validate_candidate

pytestmark = pytest.mark.unit


class TestValidateCandidate:
    """Tests for validate_candidate()."""

    def test_valid(self):
        candidate = MetadataCandidate(external_id="m1", title="Solo Leveling", cover_url="https://cdn.example/c.jpg")

        assert validate_candidate(candidate) == []

    def test_missing_external_id_when_authoritative(self):
        candidate = MetadataCandidate(external_id=" ", title="Solo Leveling")

        assert validate_candidate(candidate) == ["missing external id"]
        assert validate_candidate(candidate, authoritative=False) == []

    def test_missing_title(self):
        assert "missing title" in validate_candidate(MetadataCandidate(external_id="m1", title=""))

    @pytest.mark.parametrize("url", ["ftp://cdn.example/c.jpg", "not a url", "https:///c.jpg"])
    def test_malformed_cover(self, url):
        errors = validate_candidate(MetadataCandidate(external_id="m1", title="X", cover_url=url))

        assert errors and errors[0].startswith("malformed cover url")

    def test_ensure_raises_with_all_errors(self):
        candidate = MetadataCandidate(external_id="", title="", cover_url="ftp://x")

        with pytest.raises(CandidateValidationError) as exc_info:
            ensure_valid_candidate(candidate)

        assert len(exc_info.value.errors) == 3


class TestReviewDecision:
    """Tests for calculate_review_decision()."""

    def test_exact_id_never_reviewed(self):
        decision = calculate_review_decision(0.3, exact_id_match=True)

        assert decision.needs_review is False
        assert decision.confidence == 1.0
        assert decision.factors == ["exact_id_match"]

    def test_strong_match(self):
        decision = calculate_review_decision(0.95)

        assert decision.needs_review is False
        assert decision.factors == []

    def test_strategy_confidence_scales(self):
        decision = calculate_review_decision(0.9, strategy_confidence=0.75)

        assert decision.confidence == pytest.approx(0.675)
        assert decision.needs_review is True

    def test_low_similarity(self):
        decision = calculate_review_decision(0.65)

        assert "low_similarity" in decision.factors
        assert decision.needs_review is True

    def test_single_ambiguity_factor_tolerated(self):
        decision = calculate_review_decision(0.92, runner_up_similarity=0.90)

        assert decision.factors == ["ambiguous_match"]
        assert decision.needs_review is False

    def test_two_factors_force_review(self):
        decision = calculate_review_decision(
            0.98, runner_up_similarity=0.97, expected_language="ja", candidate_language="ko"
        )

        assert set(decision.factors) == {"ambiguous_match", "language_mismatch"}
        assert decision.needs_review is True

    def test_year_drift(self):
        decision = calculate_review_decision(0.95, expected_year=2010, candidate_year=2015)

        assert decision.factors == ["year_drift"]

    def test_small_year_drift_ignored(self):
        decision = calculate_review_decision(0.95, expected_year=2016, candidate_year=2018)

        assert decision.factors == []


class TestLanguagesCompatible:
    """Tests for languages_compatible()."""

    def test_aliases(self):
        assert languages_compatible("ko", "Korean")
        assert languages_compatible("zh-hk", "zh")

    def test_unknown_is_compatible(self):
        assert languages_compatible(None, "ja")

    def test_mismatch(self):
        assert not languages_compatible("ja", "ko")
