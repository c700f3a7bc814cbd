import json
import logging
import threading
import time

import pytest

from conftest import NOW, make_pattern
from patternrank.errors import ValidationError
from patternrank.models import Signals
from patternrank.pipeline import RankingPipeline, cap_by_budget
from patternrank.scope import ScopeFilter
from patternrank.trust import TrustEstimator


@pytest.fixture
def pipeline():
    with RankingPipeline(TrustEstimator(), max_workers=4, shard_size=4) as instance:
        yield instance


def matching_pool(count: int) -> list:
    return [
        make_pattern(
            f"P{idx:02d}",
            paths=["src/api/**"],
            languages=["typescript"],
            alpha=1 + idx,
            beta=1 + (idx % 3),
            title=f"Pattern number {idx}",
            summary="Cache API responses " * 4,
        )
        for idx in range(count)
    ]


def test_scenario_ranks_specific_trusted_pattern_first(pipeline, scenario_pool, scenario_signals):
    result = pipeline.rank(scenario_pool, scenario_signals, k=10, now=NOW)
    assert result.ids == ["A", "C"]
    assert result.meta.considered == 2
    assert result.meta.included == 2
    assert result.meta.total == 3
    assert result.meta.truncated is False
    a, c = result.candidates
    assert a.trust_score.wilson_lower > c.trust_score.wilson_lower
    assert a.overlap_score > c.overlap_score


def test_ranking_is_deterministic(pipeline, scenario_signals):
    pool = matching_pool(30)
    first = pipeline.rank(pool, scenario_signals, k=30, now=NOW, use_cache=False)
    second = pipeline.rank(list(reversed(pool)), scenario_signals, k=30, now=NOW, use_cache=False)
    assert first.ids == second.ids


def test_ties_break_on_samples_then_id(pipeline, scenario_signals):
    pool = [
        make_pattern("b", paths=["src/api/**"], alpha=3, beta=3),
        make_pattern("a", paths=["src/api/**"], alpha=3, beta=3),
        make_pattern("c", paths=["src/api/**"]),
    ]
    result = pipeline.rank(pool, scenario_signals, k=3, now=NOW)
    assert result.ids[:2] == ["a", "b"]


def test_k_truncates(pipeline, scenario_signals):
    result = pipeline.rank(matching_pool(20), scenario_signals, k=5, now=NOW)
    assert len(result.candidates) == 5
    assert result.meta.included == 5
    assert result.meta.considered == 20
    assert result.meta.truncated is True


@pytest.mark.parametrize("budget", [2, 150, 300, 1_000, 5_000])
def test_budget_bounds_serialized_size(pipeline, scenario_signals, budget):
    result = pipeline.rank(matching_pool(20), scenario_signals, k=20, budget_bytes=budget, now=NOW)
    encoded = result.to_json().encode("utf-8")
    assert len(encoded) <= budget
    assert result.meta.used_bytes == len(encoded)
    assert len(result.candidates) <= 20
    assert json.loads(encoded) == result.to_payload()


def test_cap_by_budget_stops_before_overflow(pipeline, scenario_signals):
    ranked = pipeline.rank(matching_pool(5), scenario_signals, k=5, now=NOW).candidates
    one = ranked[0].payload_size()
    selected, used, truncated = cap_by_budget(ranked, k=5, budget_bytes=2 + one)
    assert len(selected) == 1
    assert used == 2 + one
    assert truncated is True


@pytest.mark.parametrize(
    ("k", "budget"),
    [(0, None), (-1, None), (True, None), (2.5, None), (5, 0), (5, 1), (5, -10), (5, False)],
)
def test_invalid_limits_raise(pipeline, scenario_pool, scenario_signals, k, budget):
    with pytest.raises(ValidationError):
        pipeline.rank(scenario_pool, scenario_signals, k=k, budget_bytes=budget)


def test_empty_pool_and_fully_filtered_pool(pipeline, scenario_signals):
    empty = pipeline.rank([], scenario_signals, k=5)
    assert empty.candidates == []
    assert empty.meta.considered == 0

    filtered = pipeline.rank([make_pattern("ui", paths=["src/ui/**"])], scenario_signals, k=5)
    assert filtered.candidates == []
    assert filtered.meta.considered == 0
    assert filtered.meta.total == 1


def test_cache_hit_matches_forced_miss(pipeline, scenario_signals):
    pool = matching_pool(12)
    miss = pipeline.rank(pool, scenario_signals, k=8, now=NOW)
    hit = pipeline.rank(pool, scenario_signals, k=8, now=NOW)
    forced = pipeline.rank(pool, scenario_signals, k=8, now=NOW, use_cache=False)
    assert miss.meta.cache_hit is False
    assert hit.meta.cache_hit is True
    assert forced.meta.cache_hit is False
    assert miss.ids == hit.ids == forced.ids
    assert hit.meta.considered == miss.meta.considered


def test_signature_ignores_signal_order(pipeline):
    left = Signals(paths=["b.ts", "a.ts"], languages=["Python", "go"], tags=["x", "y"])
    right = Signals(paths=["a.ts", "b.ts"], languages=["go", "python"], tags=["y", "x"])
    assert pipeline.signature(left, 5, None) == pipeline.signature(right, 5, None)
    assert pipeline.signature(left, 5, None) != pipeline.signature(left, 6, None)
    pool_a = pipeline.signature(left, 5, None, "pool-a")
    assert pool_a != pipeline.signature(left, 5, None, "pool-b")


def test_session_boost_reorders_cached_ranking(pipeline, scenario_signals):
    pool = [
        make_pattern("p1", paths=["src/api/**"], alpha=3, beta=2),
        make_pattern("p2", paths=["src/api/**"], alpha=3, beta=2),
    ]
    plain = pipeline.rank(pool, scenario_signals, k=2, now=NOW)
    assert plain.ids == ["p1", "p2"]

    boosted = pipeline.rank(pool, scenario_signals, k=2, now=NOW, session_ids={"p2"})
    assert boosted.meta.cache_hit is True
    assert boosted.ids == ["p2", "p1"]
    assert boosted.candidates[0].session_boost == pytest.approx(0.1)
    assert boosted.candidates[0].blended_score == pytest.approx(
        boosted.candidates[0].base_score + 0.1
    )

    again = pipeline.rank(pool, scenario_signals, k=2, now=NOW)
    assert again.ids == ["p1", "p2"]


def test_dict_pool_entries_are_validated_and_bad_ones_skipped(pipeline, scenario_signals, caplog):
    pool = [
        {"id": "D", "type": "lang", "scope": {"paths": ["src/**"]}, "unknown": 1},
        {"id": "bad", "type": "NOPE"},
        {"type": "LANG"},
        make_pattern("A", paths=["src/api/**"]),
    ]
    with caplog.at_level(logging.WARNING, logger="patternrank.pipeline"):
        result = pipeline.rank(pool, scenario_signals, k=5, now=NOW)
    assert sorted(result.ids) == ["A", "D"]
    assert result.meta.total == 4
    assert result.meta.considered == 2
    assert "bad" in caplog.text


def test_cache_is_keyed_by_pool_contents(pipeline, scenario_signals):
    first = pipeline.rank([make_pattern("A", paths=["src/**"])], scenario_signals, k=5, now=NOW)
    second = pipeline.rank([make_pattern("Z", paths=["src/**"])], scenario_signals, k=5, now=NOW)
    assert first.ids == ["A"]
    assert second.ids == ["Z"]
    assert second.meta.cache_hit is False

    reordered = [make_pattern("A", paths=["src/**"]), make_pattern("Z", paths=["src/**"])]
    pipeline.rank(reordered, scenario_signals, k=5, now=NOW)
    again = pipeline.rank(list(reversed(reordered)), scenario_signals, k=5, now=NOW)
    assert again.meta.cache_hit is True

    retrusted = [make_pattern("A", paths=["src/**"], alpha=9), reordered[1]]
    assert pipeline.rank(retrusted, scenario_signals, k=5, now=NOW).meta.cache_hit is False


def test_cancelled_ranking_is_partial_and_not_cached(pipeline, scenario_signals):
    pool = matching_pool(10)
    cancel = threading.Event()
    cancel.set()
    result = pipeline.rank(pool, scenario_signals, k=5, now=NOW, cancel_event=cancel)
    assert result.meta.partial is True
    assert result.meta.considered == 0
    assert result.candidates == []

    retry = pipeline.rank(pool, scenario_signals, k=5, now=NOW)
    assert retry.meta.cache_hit is False
    assert retry.meta.partial is False
    assert retry.meta.considered == 10


class SlowScopeFilter(ScopeFilter):
    def matches(self, pattern, signals, now=None):
        time.sleep(0.05)
        return super().matches(pattern, signals, now)


def test_timeout_returns_partial_result():
    pool = matching_pool(40)
    with RankingPipeline(TrustEstimator(), SlowScopeFilter(), max_workers=1, shard_size=1) as slow:
        result = slow.rank(pool, Signals(paths=["src/api/x.ts"]), k=5, now=NOW, timeout=0.2)
    assert result.meta.partial is True
    assert result.meta.considered < 40
    assert len(result.candidates) <= 5


class ExplodingScopeFilter(ScopeFilter):
    def matches(self, pattern, signals, now=None):
        if pattern.id == "boom":
            raise RuntimeError("corrupt pattern")
        return super().matches(pattern, signals, now)


def test_failing_candidate_is_dropped_and_logged(scenario_pool, scenario_signals, caplog):
    pool = scenario_pool + [make_pattern("boom")]
    with RankingPipeline(TrustEstimator(), ExplodingScopeFilter()) as exploding:
        with caplog.at_level(logging.ERROR, logger="patternrank.pipeline"):
            result = exploding.rank(pool, scenario_signals, k=10, now=NOW)
    assert result.ids == ["A", "C"]
    assert result.meta.considered == 2
    assert "boom" in caplog.text


def test_invalidate_cache_forces_rescoring(pipeline, scenario_pool, scenario_signals):
    pipeline.rank(scenario_pool, scenario_signals, k=3, now=NOW)
    pipeline.invalidate_cache()
    result = pipeline.rank(scenario_pool, scenario_signals, k=3, now=NOW)
    assert result.meta.cache_hit is False
