from __future__ import annotations

import fakeredis
import pytest

from conftest import NOW, make_pattern
from patternrank.config import Settings
from patternrank.errors import NotFoundError
from patternrank.models import TrustParams
from patternrank.storage import InMemoryPatternStore, RedisPatternStore
from patternrank.trust import TrustEstimator


@pytest.fixture
def redis_store():
    redis = fakeredis.FakeRedis()
    try:
        yield RedisPatternStore(redis, Settings(redis_namespace="test"))
    finally:
        redis.close()


@pytest.mark.integration
def test_put_and_get_round_trip(redis_store) -> None:
    pattern = make_pattern(
        "PAT:API:1",
        paths=["src/api/**"],
        languages=["typescript"],
        frameworks=[{"name": "express", "range": ">=4 <6"}],
        alpha=5,
        beta=2,
        last_updated=NOW,
        tags=["api"],
        repo="acme/api",
    )
    redis_store.put(pattern)

    loaded = redis_store.get("PAT:API:1")
    assert loaded == pattern
    assert redis_store.redis.exists(redis_store.pattern_key("PAT:API:1"))
    assert redis_store.pattern_key("x") == "h:pattern:test:x"


@pytest.mark.integration
def test_get_missing_raises_not_found(redis_store) -> None:
    with pytest.raises(NotFoundError):
        redis_store.get("missing")
    with pytest.raises(NotFoundError):
        redis_store.save("missing", TrustParams())


@pytest.mark.integration
def test_get_many_skips_unknown_ids(redis_store) -> None:
    redis_store.put_many([make_pattern("a"), make_pattern("b")])
    found = redis_store.get_many(["a", "ghost", "b", "a"])
    assert sorted(found) == ["a", "b"]
    assert redis_store.get_many([]) == {}


@pytest.mark.integration
def test_save_many_updates_trust_only(redis_store) -> None:
    redis_store.put_many([make_pattern("a", title="Alpha"), make_pattern("b")])
    redis_store.save_many(
        {
            "a": TrustParams(alpha=3, beta=1, last_updated=NOW),
            "b": TrustParams(alpha=1, beta=4, last_updated=NOW),
        }
    )
    a = redis_store.get("a")
    assert (a.trust.alpha, a.title) == (3.0, "Alpha")
    assert redis_store.get("b").trust.beta == 4.0

    with pytest.raises(NotFoundError):
        redis_store.save_many({"a": TrustParams(), "ghost": TrustParams()})
    assert redis_store.get("a").trust.alpha == 3.0


@pytest.mark.integration
def test_load_pool_and_delete(redis_store) -> None:
    redis_store.put_many([make_pattern("c"), make_pattern("a"), make_pattern("b")])
    assert [pattern.id for pattern in redis_store.load_pool()] == ["a", "b", "c"]
    redis_store.delete("b")
    assert [pattern.id for pattern in redis_store.load_pool()] == ["a", "c"]


@pytest.mark.integration
def test_batch_update_against_redis(redis_store) -> None:
    redis_store.put_many([make_pattern(f"p{idx}") for idx in range(10)])
    updates = [{"pattern_id": f"p{idx}", "outcome": idx % 2 == 0} for idx in range(10)]
    updates.append({"pattern_id": "ghost", "outcome": True})

    result = TrustEstimator(redis_store).batch_update(updates)

    assert (result.updated, result.failed) == (10, 1)
    assert redis_store.get("p0").trust.alpha == 2.0
    assert redis_store.get("p1").trust.beta == 2.0


def test_in_memory_store_contract() -> None:
    store = InMemoryPatternStore([make_pattern("a")])
    store.save("a", TrustParams(alpha=2))
    assert store.get("a").trust.alpha == 2.0
    assert len(store) == 1
    with pytest.raises(NotFoundError):
        store.get("b")
    with pytest.raises(NotFoundError):
        store.save_many({"a": TrustParams(), "b": TrustParams()})
    assert store.get("a").trust.alpha == 2.0
