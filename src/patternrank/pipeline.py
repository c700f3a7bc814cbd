"""Filter, score, sort and budget a candidate pool for one query."""

from __future__ import annotations

import hashlib
import logging
import os
import threading
from collections.abc import Collection
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timezone
from time import perf_counter
from typing import Any, Iterable, Sequence

from pydantic import ValidationError as PydanticValidationError

from .cache import ResultCache
from .errors import CacheError, ValidationError
from .models import Pattern, RankedMeta, RankedResult, ScoredCandidate, Signals
from .scope import ScopeFilter
from .scoring import QueryFeatures, RelevanceScorer
from .trust import TrustEstimator
from .utils import hash_payload

logger = logging.getLogger(__name__)

ARRAY_OVERHEAD = 2  # "[" and "]"


@dataclass(frozen=True)
class BaseRanking:
    """Survivors of one query in base order, before session boost and truncation."""

    candidates: tuple[ScoredCandidate, ...]
    considered: int


def base_order(candidate: ScoredCandidate) -> tuple[float, float, str]:
    return (-candidate.base_score, -candidate.trust_score.samples, candidate.pattern.id)


def final_order(candidate: ScoredCandidate) -> tuple[float, float, str]:
    return (-candidate.blended_score, -candidate.trust_score.samples, candidate.pattern.id)


def pool_fingerprint(patterns: Iterable[Pattern]) -> str:
    """Order-independent digest of a pool; any change to any pattern alters it."""
    digest = hashlib.sha256()
    for value in sorted(hash(pattern) for pattern in patterns):
        digest.update(value.to_bytes(8, "little", signed=True))
    return digest.hexdigest()


def _require_positive(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if value <= 0:
        raise ValidationError(f"{name} must be positive, got {value}")


def validate_limits(k: Any, budget_bytes: Any, timeout: Any = None) -> None:
    _require_positive("k", k)
    if budget_bytes is not None:
        _require_positive("budget_bytes", budget_bytes)
        if budget_bytes < ARRAY_OVERHEAD:
            raise ValidationError(
                f"budget_bytes must be at least {ARRAY_OVERHEAD} to hold an empty result, "
                f"got {budget_bytes}"
            )
    if timeout is not None:
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValidationError(f"timeout must be a positive number, got {timeout!r}")


def cap_by_budget(
    candidates: Iterable[ScoredCandidate], k: int, budget_bytes: int | None
) -> tuple[list[ScoredCandidate], int, bool]:
    """
    Take candidates in order until ``k`` items or ``budget_bytes`` is reached.

    The running size counts the JSON array brackets and separators, so the
    serialized result never exceeds the budget.
    """
    acc: list[ScoredCandidate] = []
    used = ARRAY_OVERHEAD
    truncated = False
    for candidate in candidates:
        if len(acc) >= k:
            truncated = True
            break
        size = candidate.payload_size() + (1 if acc else 0)
        if budget_bytes is not None and used + size > budget_bytes:
            truncated = True
            break
        acc.append(candidate)
        used += size
    return acc, used, truncated


class RankingPipeline:
    """
    Orchestrates cache lookup, scope filtering, parallel scoring, ordering and
    budgeted truncation.

    The pipeline owns a fixed thread pool; call ``close()`` (or use it as a
    context manager) to release it. Patterns are only read, never mutated.
    """

    def __init__(
        self,
        estimator: TrustEstimator,
        scope_filter: ScopeFilter | None = None,
        scorer: RelevanceScorer | None = None,
        cache: ResultCache[BaseRanking] | None = None,
        *,
        max_workers: int = 8,
        shard_size: int = 512,
    ) -> None:
        if shard_size <= 0:
            raise ValueError("shard_size must be positive")
        self.estimator = estimator
        self.scope_filter = scope_filter or ScopeFilter()
        self.scorer = scorer or RelevanceScorer()
        self.cache: ResultCache[BaseRanking] = cache if cache is not None else ResultCache()
        self.shard_size = shard_size
        self.max_workers = max(1, min(os.cpu_count() or 1, max_workers))
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="patternrank"
        )

    # ---- Lifecycle -----------------------------------------------------------
    def close(self) -> None:
        self._executor.shutdown(wait=True, cancel_futures=True)

    def __enter__(self) -> "RankingPipeline":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def invalidate_cache(self) -> None:
        self.cache.clear()

    # ---- Ranking ---------------------------------------------------------------
    def signature(
        self, signals: Signals, k: int, budget_bytes: int | None, pool_key: str = ""
    ) -> str:
        try:
            return hash_payload(
                {
                    "signals": signals.signature_payload(),
                    "k": k,
                    "budget_bytes": budget_bytes,
                    "pool": pool_key,
                }
            )
        except (TypeError, ValueError) as exc:
            raise CacheError(f"cannot build query signature: {exc}") from exc

    def rank(
        self,
        pool: Sequence[Pattern | dict[str, Any]],
        signals: Signals,
        k: int,
        budget_bytes: int | None = None,
        *,
        session_ids: Collection[str] = (),
        now: datetime | None = None,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
        use_cache: bool = True,
    ) -> RankedResult:
        started = perf_counter()
        validate_limits(k, budget_bytes, timeout)
        if not isinstance(signals, Signals):
            raise ValidationError("signals must be a Signals instance")
        now = _aware(now)
        patterns, total = _coerce_pool(pool)

        key: str | None = None
        if use_cache:
            try:
                key = self.signature(signals, k, budget_bytes, pool_fingerprint(patterns))
            except CacheError as exc:
                logger.warning("bypassing result cache: %s", exc)

        ranking = self.cache.get(key) if key is not None else None
        cache_hit = ranking is not None
        partial = False
        if ranking is None:
            ranking, partial = self._score_pool(patterns, signals, now, timeout, cancel_event)
            if key is not None and not partial:
                self.cache.set(key, ranking)

        ordered = self._apply_session(ranking.candidates, session_ids)
        selected, used, truncated = cap_by_budget(ordered, k, budget_bytes)
        took_ms = int((perf_counter() - started) * 1000)
        logger.debug(
            "rank total=%s considered=%s included=%s cache_hit=%s partial=%s took_ms=%s",
            total,
            ranking.considered,
            len(selected),
            cache_hit,
            partial,
            took_ms,
        )
        return RankedResult(
            candidates=selected,
            meta=RankedMeta(
                considered=ranking.considered,
                included=len(selected),
                total=total,
                used_bytes=used,
                truncated=truncated,
                cache_hit=cache_hit,
                partial=partial,
                took_ms=took_ms,
            ),
        )

    def _apply_session(
        self, candidates: Sequence[ScoredCandidate], session_ids: Collection[str]
    ) -> list[ScoredCandidate]:
        if not session_ids:
            return list(candidates)
        boosted = [
            self.scorer.boost(candidate) if candidate.pattern.id in session_ids else candidate
            for candidate in candidates
        ]
        return sorted(boosted, key=final_order)

    def _score_pool(
        self,
        patterns: list[Pattern],
        signals: Signals,
        now: datetime,
        timeout: float | None,
        cancel_event: threading.Event | None,
    ) -> tuple[BaseRanking, bool]:
        if not patterns:
            return BaseRanking(candidates=(), considered=0), False

        query = self.scorer.prepare(signals)
        stop = threading.Event()
        futures: list[Future[tuple[list[ScoredCandidate], bool]]] = [
            self._executor.submit(
                self._score_shard,
                patterns[start : start + self.shard_size],
                signals,
                query,
                now,
                stop,
                cancel_event,
            )
            for start in range(0, len(patterns), self.shard_size)
        ]
        done, not_done = wait(futures, timeout=timeout)
        if not_done:
            # shards still running past the deadline
            stop.set()
            for future in not_done:
                future.cancel()
            logger.warning(
                "ranking timed out after %ss; dropped %s of %s shards",
                timeout,
                len(not_done),
                len(futures),
            )

        partial = bool(not_done)
        survivors: list[ScoredCandidate] = []
        for future in futures:
            if future not in done:
                continue
            candidates, complete = future.result()
            if not complete:
                partial = True
                continue
            survivors.extend(candidates)
        survivors.sort(key=base_order)
        return BaseRanking(candidates=tuple(survivors), considered=len(survivors)), partial

    def _score_shard(
        self,
        shard: Sequence[Pattern],
        signals: Signals,
        query: QueryFeatures,
        now: datetime,
        stop: threading.Event,
        cancel_event: threading.Event | None,
    ) -> tuple[list[ScoredCandidate], bool]:
        scored: list[ScoredCandidate] = []
        for pattern in shard:
            if stop.is_set() or (cancel_event is not None and cancel_event.is_set()):
                return scored, False
            try:
                if not self.scope_filter.matches(pattern, signals, now):
                    continue
                trust = self.estimator.score_pattern(pattern, now)
                scored.append(self.scorer.score(pattern, query, trust))
            except Exception:
                logger.exception("dropping pattern %s: scoring failed", pattern.id)
        return scored, True


def _aware(now: datetime | None) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def _coerce_pool(pool: Iterable[Pattern | dict[str, Any]] | None) -> tuple[list[Pattern], int]:
    """Valid patterns from ``pool`` plus the number of entries supplied."""
    if pool is None:
        return [], 0
    patterns: list[Pattern] = []
    total = 0
    for item in pool:
        total += 1
        if isinstance(item, Pattern):
            patterns.append(item)
            continue
        try:
            patterns.append(Pattern.model_validate(item))
        except PydanticValidationError as exc:
            pattern_id = item.get("id") if isinstance(item, dict) else None
            logger.warning(
                "skipping invalid pool entry %s: %s error(s)", pattern_id, exc.error_count()
            )
    return patterns, total


__all__ = [
    "RankingPipeline",
    "BaseRanking",
    "cap_by_budget",
    "pool_fingerprint",
    "validate_limits",
    "base_order",
    "final_order",
]
