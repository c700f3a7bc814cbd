"""Context overlap scoring blended with trust."""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass
from typing import Hashable

from .cache import LRUCache
from .models import Pattern, ScoredCandidate, Signals, TrustScore
from .tagging import (
    detect_components,
    detect_themes,
    extract_tags,
    path_components,
    scope_path_components,
)
from .utils import EditDistanceMatcher

WEIGHTS: dict[str, float] = {
    "tags": 3.0,
    "themes": 2.0,
    "paths": 2.0,
    "components": 1.0,
    "type": 1.0,
    "title": 1.0,
}
TOTAL_WEIGHT = sum(WEIGHTS.values())

DEFAULT_TRUST_WEIGHT = 0.5
DEFAULT_SESSION_BOOST = 0.1


def jaccard(left: Collection[Hashable], right: Collection[Hashable]) -> float:
    """``|A & B| / |A | B|``; 0.0 when both sets are empty."""
    if not left and not right:
        return 0.0
    a, b = set(left), set(right)
    union = len(a | b)
    return len(a & b) / union if union else 0.0


@dataclass(frozen=True)
class QueryFeatures:
    """Query-side feature sets, computed once per ranking call."""

    tags: frozenset[str]
    themes: frozenset[str]
    paths: frozenset[str]
    components: frozenset[str]
    task_type: str | None
    task: EditDistanceMatcher | None


@dataclass(frozen=True)
class PatternFeatures:
    tags: frozenset[str]
    themes: frozenset[str]
    paths: frozenset[str]
    components: frozenset[str]


def query_features(signals: Signals) -> QueryFeatures:
    task = (signals.task or "").strip()
    return QueryFeatures(
        tags=frozenset(signals.tags) | extract_tags(task),
        themes=detect_themes(task),
        paths=path_components(signals.paths),
        components=detect_components(signals.paths),
        task_type=signals.task_type.value if signals.task_type else None,
        task=EditDistanceMatcher(task) if task else None,
    )


def pattern_features(pattern: Pattern) -> PatternFeatures:
    text = f"{pattern.title} {pattern.summary}"
    return PatternFeatures(
        tags=frozenset(pattern.tags) | extract_tags(text),
        themes=detect_themes(text),
        paths=scope_path_components(pattern.scope.paths),
        components=detect_components(pattern.scope.paths),
    )


class RelevanceScorer:
    """
    Weighted Jaccard overlap between a pattern and the caller's context.

    The overlap is blended with the Wilson lower bound of the pattern's trust:
    ``trust_weight * wilson + (1 - trust_weight) * overlap``. Pattern-side
    features are memoized in a bounded LRU keyed by the fields they read.
    """

    def __init__(
        self,
        trust_weight: float = DEFAULT_TRUST_WEIGHT,
        session_boost: float = DEFAULT_SESSION_BOOST,
        cache_size: int = 20_000,
    ) -> None:
        if not 0.0 <= trust_weight <= 1.0:
            raise ValueError("trust_weight must be within [0, 1]")
        self.trust_weight = trust_weight
        self.session_boost = session_boost
        self._features: LRUCache[PatternFeatures] = LRUCache(cache_size)

    def prepare(self, signals: Signals) -> QueryFeatures:
        return query_features(signals)

    def features(self, pattern: Pattern) -> PatternFeatures:
        key = (
            pattern.id,
            pattern.title,
            pattern.summary,
            pattern.tags,
            pattern.scope.paths,
        )
        cached = self._features.get(key)
        if cached is None:
            cached = pattern_features(pattern)
            self._features.set(key, cached)
        return cached

    def overlap(self, pattern: Pattern, query: QueryFeatures) -> dict[str, float]:
        features = self.features(pattern)
        return {
            "tags": jaccard(features.tags, query.tags),
            "themes": jaccard(features.themes, query.themes),
            "paths": jaccard(features.paths, query.paths),
            "components": jaccard(features.components, query.components),
            "type": 1.0 if query.task_type and query.task_type == pattern.type.value else 0.0,
            "title": query.task.ratio(pattern.title) if query.task else 0.0,
        }

    def score(
        self,
        pattern: Pattern,
        signals: Signals | QueryFeatures,
        trust_score: TrustScore,
        session_ids: Collection[str] = (),
    ) -> ScoredCandidate:
        query = signals if isinstance(signals, QueryFeatures) else self.prepare(signals)
        breakdown = self.overlap(pattern, query)
        weighted = sum(WEIGHTS[name] * value for name, value in breakdown.items())
        overlap_score = min(1.0, max(0.0, weighted / TOTAL_WEIGHT))
        base = self.trust_weight * trust_score.wilson_lower + (1.0 - self.trust_weight) * overlap_score
        base = min(1.0, max(0.0, base))
        breakdown["overlap"] = overlap_score
        breakdown["trust"] = trust_score.wilson_lower
        candidate = ScoredCandidate(
            pattern=pattern,
            trust_score=trust_score,
            overlap_score=overlap_score,
            base_score=base,
            blended_score=base,
            breakdown=breakdown,
        )
        if pattern.id in session_ids:
            candidate = self.boost(candidate)
        return candidate

    def boost(self, candidate: ScoredCandidate) -> ScoredCandidate:
        """Session boost on top of the base score, capped at 1.0."""
        boosted = min(1.0, candidate.base_score + self.session_boost)
        return candidate.model_copy(
            update={"blended_score": boosted, "session_boost": boosted - candidate.base_score}
        )

    def clear(self) -> None:
        self._features.clear()


__all__ = [
    "RelevanceScorer",
    "QueryFeatures",
    "PatternFeatures",
    "query_features",
    "pattern_features",
    "jaccard",
    "WEIGHTS",
    "TOTAL_WEIGHT",
]
