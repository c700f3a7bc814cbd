"""Regression guards for the pattern and signal models."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from conftest import make_pattern
from patternrank.models import (
    Pattern,
    PatternType,
    RankedResult,
    ScoredCandidate,
    Signals,
    TrustParams,
    TrustScore,
)


def test_pattern_normalizes_type_tags_and_languages():
    pattern = Pattern.model_validate(
        {
            "id": "PAT:1",
            "type": " codebase ",
            "tags": ["Cache", "cache", " API "],
            "scope": {"languages": ["TypeScript"]},
            "ignored_field": {"nested": True},
        }
    )
    assert pattern.type is PatternType.CODEBASE
    assert pattern.tags == {"cache", "api"}
    assert pattern.scope.languages == {"typescript"}


def test_pattern_is_read_only():
    pattern = make_pattern("p")
    with pytest.raises(PydanticValidationError):
        pattern.title = "changed"


def test_trust_params_stay_at_or_above_prior():
    with pytest.raises(PydanticValidationError):
        TrustParams(alpha=0.5, beta=1.0)


def test_naive_timestamps_become_utc():
    trust = TrustParams(last_updated=datetime(2026, 1, 1))
    assert trust.last_updated.tzinfo is timezone.utc


def test_signals_reject_non_positive_max_age():
    with pytest.raises(PydanticValidationError):
        Signals(max_age_days=0)


def test_signature_payload_is_order_independent():
    left = Signals(
        paths=["b.ts", "a.ts"],
        frameworks=[{"name": "React", "version": "18.2.0"}, {"name": "vite", "version": "5"}],
        repo="Acme/API",
        task="  Fix   the Cache ",
    )
    right = Signals(
        paths=["a.ts", "b.ts"],
        frameworks=[{"name": "vite", "version": "5"}, {"name": "react", "version": "18.2.0"}],
        repo="acme/api",
        task="fix the cache",
    )
    assert left.signature_payload() == right.signature_payload()


def test_ranked_result_serialization():
    pattern = make_pattern("p", title="Title", summary="x" * 500)
    trust = TrustScore(
        value=0.5,
        confidence=0.1,
        interval=(0.1, 0.9),
        wilson_lower=0.123456,
        samples=2,
        alpha=2,
        beta=2,
    )
    candidate = ScoredCandidate(
        pattern=pattern,
        trust_score=trust,
        overlap_score=0.5,
        base_score=0.3117,
        blended_score=0.3117,
    )
    result = RankedResult(candidates=[candidate])
    payload = result.to_payload()[0]
    assert payload["id"] == "p"
    assert payload["trust"] == 0.1235
    assert len(payload["summary"]) == 240
    assert result.serialized_size() == len(result.to_json().encode("utf-8"))
    assert result.ids == ["p"]
