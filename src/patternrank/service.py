"""Service object owning every stateful piece of the ranking core."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence

from pydantic import ValidationError as PydanticValidationError

from .cache import ResultCache, SessionTracker
from .config import Settings, get_settings
from .errors import ValidationError
from .models import (
    BatchUpdateResult,
    Pattern,
    RankedResult,
    Signals,
    TrustParams,
    TrustScore,
    TrustUpdate,
)
from .pipeline import BaseRanking, RankingPipeline
from .scope import ScopeFilter
from .scoring import RelevanceScorer
from .storage import PatternStore
from .trust import TrustEstimator

logger = logging.getLogger(__name__)


def coerce_signals(signals: Signals | Mapping[str, Any] | None) -> Signals:
    if signals is None:
        return Signals()
    if isinstance(signals, Signals):
        return signals
    try:
        return Signals.model_validate(signals)
    except PydanticValidationError as exc:
        raise ValidationError(f"invalid signals: {exc}") from exc


class RankingService:
    """
    Entry point for callers embedding the ranking core.

    Construct one per process (or per tenant) and share it. Two services never
    share caches.
    """

    def __init__(self, settings: Settings | None = None, store: PatternStore | None = None) -> None:
        self.settings = settings or get_settings()
        self.store = store
        self.results: ResultCache[BaseRanking] = ResultCache(
            max_entries=self.settings.result_cache_max_entries,
            ttl_seconds=self.settings.result_cache_ttl_seconds,
        )
        self.sessions = SessionTracker(ttl_seconds=self.settings.session_ttl_seconds)
        self.estimator = TrustEstimator(
            store,
            prior_alpha=self.settings.prior_alpha,
            prior_beta=self.settings.prior_beta,
            default_half_life_days=self.settings.half_life_days,
            cache_size=self.settings.interval_cache_size,
        )
        self.pipeline = RankingPipeline(
            self.estimator,
            ScopeFilter(cache_size=self.settings.glob_cache_size),
            RelevanceScorer(
                trust_weight=self.settings.trust_weight,
                session_boost=self.settings.session_boost,
            ),
            self.results,
            max_workers=self.settings.max_workers,
            shard_size=self.settings.shard_size,
        )

    def close(self) -> None:
        self.pipeline.close()

    def __enter__(self) -> "RankingService":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ---- Ranking ---------------------------------------------------------------
    def rank(
        self,
        pool: Sequence[Pattern | dict[str, Any]],
        signals: Signals | Mapping[str, Any] | None,
        k: int | None = None,
        budget_bytes: int | None = None,
        session_id: str | None = None,
        *,
        now: datetime | None = None,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
        use_cache: bool = True,
    ) -> RankedResult:
        return self.pipeline.rank(
            pool,
            coerce_signals(signals),
            self.settings.default_k if k is None else k,
            budget_bytes,
            session_ids=self.sessions.recent(session_id),
            now=now,
            timeout=timeout,
            cancel_event=cancel_event,
            use_cache=use_cache,
        )

    def record_usage(self, session_id: str, pattern_ids: str | Iterable[str]) -> None:
        if not session_id:
            raise ValidationError("session_id must be a non-empty string")
        if isinstance(pattern_ids, str):
            pattern_ids = [pattern_ids]
        self.sessions.record(session_id, pattern_ids)

    def invalidate_cache(self) -> None:
        self.pipeline.invalidate_cache()
        logger.debug("result cache cleared")

    # ---- Trust -----------------------------------------------------------------
    def calculate_trust(self, successes: float, failures: float) -> TrustScore:
        return self.estimator.calculate_trust(successes, failures)

    # Trust writes clear cached rankings.
    def update_trust(self, pattern_id: str, outcome: bool) -> TrustScore:
        score = self.estimator.update_trust(pattern_id, outcome)
        self.results.clear()
        return score

    def batch_update(self, updates: Sequence[TrustUpdate | dict]) -> BatchUpdateResult:
        result = self.estimator.batch_update(updates)
        if result.updated:
            self.results.clear()
        return result

    def decay_trust(self, pattern_id: str, days_elapsed: float) -> TrustParams:
        trust = self.estimator.decay_trust(pattern_id, days_elapsed)
        self.results.clear()
        return trust


__all__ = ["RankingService", "coerce_signals"]
