"""Beta-Bernoulli trust estimation with exponential evidence decay."""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from datetime import datetime, timezone
from time import perf_counter
from typing import Sequence

from scipy.special import betaincinv

from .cache import LRUCache
from .errors import ConfigurationError, ValidationError
from .models import (
    BatchError,
    BatchUpdateResult,
    Pattern,
    TrustParams,
    TrustScore,
    TrustUpdate,
)
from .storage import PatternStore

logger = logging.getLogger(__name__)

Z_95 = 1.96
CONFIDENCE_LEVEL = 0.95
DEFAULT_PRIOR = 1.0
DEFAULT_HALF_LIFE_DAYS = 90
SECONDS_PER_DAY = 86_400.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def days_between(start: datetime | None, end: datetime) -> float:
    if start is None:
        return 0.0
    return max(0.0, (end - start).total_seconds() / SECONDS_PER_DAY)


def decay_factor(days: float, half_life_days: float) -> float:
    """Fraction of evidence kept after ``days``: ``0.5 ** (days / half_life)``."""
    if half_life_days <= 0:
        raise ValidationError("half-life must be positive")
    if days <= 0:
        return 1.0
    return 0.5 ** (days / half_life_days)


def decay_params(
    alpha: float,
    beta: float,
    days: float,
    half_life_days: float,
    prior_alpha: float = DEFAULT_PRIOR,
    prior_beta: float = DEFAULT_PRIOR,
) -> tuple[float, float]:
    """Shrink evidence above the prior toward the prior; never below it."""
    factor = decay_factor(days, half_life_days)
    if factor == 1.0:
        return alpha, beta
    decayed_alpha = prior_alpha + max(0.0, alpha - prior_alpha) * factor
    decayed_beta = prior_beta + max(0.0, beta - prior_beta) * factor
    return decayed_alpha, decayed_beta


def wilson_lower_bound(successes: float, failures: float, z: float = Z_95) -> float:
    """
    Lower bound of the Wilson score interval for an observed success rate.

    Works on raw observations only, so small samples are penalized:
    1/1 scores well below 100/100 even though both have a rate of 1.0.
    Returns 0.0 when nothing has been observed.
    """
    n = successes + failures
    if n <= 0:
        return 0.0
    p_hat = successes / n
    z2 = z * z
    centre = p_hat + z2 / (2 * n)
    spread = z * math.sqrt((p_hat * (1 - p_hat) + z2 / (4 * n)) / n)
    return max(0.0, (centre - spread) / (1 + z2 / n))


def beta_quantile(p: float, alpha: float, beta: float) -> float:
    if not 0.0 <= p <= 1.0:
        raise ValidationError("quantile p must be between 0 and 1")
    return float(betaincinv(alpha, beta, p))


def credible_interval(alpha: float, beta: float, level: float = CONFIDENCE_LEVEL) -> tuple[float, float]:
    tail = (1.0 - level) / 2.0
    return beta_quantile(tail, alpha, beta), beta_quantile(1.0 - tail, alpha, beta)


class TrustEstimator:
    """
    Converts usage counters into confidence-aware trust scores.

    Reads and writes go through an injected PatternStore. Credible intervals
    are cached per pattern ID and invalidated by every write to that ID.
    """

    def __init__(
        self,
        store: PatternStore | None = None,
        *,
        prior_alpha: float = DEFAULT_PRIOR,
        prior_beta: float = DEFAULT_PRIOR,
        default_half_life_days: int = DEFAULT_HALF_LIFE_DAYS,
        cache_size: int = 1_000,
    ) -> None:
        if prior_alpha <= 0 or prior_beta <= 0:
            raise ValidationError("priors must be positive")
        self.store = store
        self.prior_alpha = prior_alpha
        self.prior_beta = prior_beta
        self.default_half_life_days = default_half_life_days
        self._interval_cache: LRUCache[tuple[float, float]] = LRUCache(cache_size)
        self._half_life_by_type: dict[str, int] = {}
        self._prior_by_type: dict[str, tuple[float, float]] = {}

    # ---- Pure scoring ----------------------------------------------------
    def calculate_trust(self, successes: float, failures: float) -> TrustScore:
        for name, count in (("successes", successes), ("failures", failures)):
            if isinstance(count, bool) or not isinstance(count, (int, float)):
                raise ValidationError(f"{name} must be a number, got {count!r}")
            if not math.isfinite(count) or count < 0:
                raise ValidationError(f"invalid {name}: {count!r}")
        return self._score(self.prior_alpha + successes, self.prior_beta + failures)

    def score_params(
        self, trust: TrustParams, *, now: datetime | None = None, half_life_days: int | None = None
    ) -> TrustScore:
        """Score stored parameters after decaying them to ``now``."""
        alpha, beta = trust.alpha, trust.beta
        if trust.last_updated is not None:
            now = now or _utcnow()
            alpha, beta = decay_params(
                alpha,
                beta,
                days_between(trust.last_updated, now),
                half_life_days or self.default_half_life_days,
                self.prior_alpha,
                self.prior_beta,
            )
        return self._score(max(alpha, self.prior_alpha), max(beta, self.prior_beta))

    def score_pattern(self, pattern: Pattern, now: datetime | None = None) -> TrustScore:
        return self.score_params(
            pattern.trust, now=now, half_life_days=self.half_life_for(pattern)
        )

    def _score(self, alpha: float, beta: float) -> TrustScore:
        successes = max(0.0, alpha - self.prior_alpha)
        failures = max(0.0, beta - self.prior_beta)
        interval = credible_interval(alpha, beta)
        return TrustScore(
            value=alpha / (alpha + beta),
            confidence=1.0 - (interval[1] - interval[0]),
            interval=interval,
            wilson_lower=wilson_lower_bound(successes, failures),
            samples=successes + failures,
            alpha=alpha,
            beta=beta,
        )

    # ---- Per-type overrides -------------------------------------------------
    def set_half_life(self, pattern_type: str, days: int) -> None:
        if days <= 0:
            raise ValidationError("half-life must be positive")
        self._half_life_by_type[str(pattern_type).upper()] = days

    def set_prior(self, pattern_type: str, alpha: float, beta: float) -> None:
        if alpha < self.prior_alpha or beta < self.prior_beta:
            raise ValidationError("type prior cannot sit below the uninformative prior")
        self._prior_by_type[str(pattern_type).upper()] = (alpha, beta)

    def prior_for(self, pattern_type: str) -> tuple[float, float]:
        return self._prior_by_type.get(str(pattern_type).upper(), (self.prior_alpha, self.prior_beta))

    def half_life_for(self, pattern: Pattern) -> int:
        override = self._half_life_by_type.get(pattern.type.value)
        return override or pattern.metadata.half_life_days or self.default_half_life_days

    def initial_trust(self, pattern_type: str) -> TrustParams:
        alpha, beta = self.prior_for(pattern_type)
        return TrustParams(alpha=alpha, beta=beta, last_updated=_utcnow())

    # ---- Store-backed operations -------------------------------------------
    def _require_store(self) -> PatternStore:
        if self.store is None:
            raise ConfigurationError("trust estimator has no pattern store")
        return self.store

    def confidence_interval(self, pattern_id: str) -> tuple[float, float]:
        cached = self._interval_cache.get(pattern_id)
        if cached is not None:
            return cached
        pattern = self._require_store().get(pattern_id)
        interval = credible_interval(pattern.trust.alpha, pattern.trust.beta)
        self._interval_cache.set(pattern_id, interval)
        return interval

    def quantile(self, pattern_id: str, p: float) -> float:
        if not pattern_id:
            raise ValidationError("pattern ID must be a non-empty string")
        pattern = self._require_store().get(pattern_id)
        return beta_quantile(p, pattern.trust.alpha, pattern.trust.beta)

    def decay_trust(self, pattern_id: str, days_elapsed: float) -> TrustParams:
        if days_elapsed < 0:
            raise ValidationError("days_elapsed must be non-negative")
        store = self._require_store()
        pattern = store.get(pattern_id)
        if days_elapsed == 0:
            return pattern.trust
        alpha, beta = decay_params(
            pattern.trust.alpha,
            pattern.trust.beta,
            days_elapsed,
            self.half_life_for(pattern),
            self.prior_alpha,
            self.prior_beta,
        )
        trust = pattern.trust.model_copy(update={"alpha": alpha, "beta": beta})
        store.save(pattern_id, trust)
        self.invalidate(pattern_id)
        return trust

    def update_trust(
        self, pattern_id: str, outcome: bool, *, now: datetime | None = None
    ) -> TrustScore:
        store = self._require_store()
        pattern = store.get(pattern_id)
        now = now or _utcnow()
        trust = self._apply_outcome(pattern, pattern.trust, outcome, now)
        store.save(pattern_id, trust)
        self.invalidate(pattern_id)
        return self._score(trust.alpha, trust.beta)

    def batch_update(self, updates: Sequence[TrustUpdate | dict]) -> BatchUpdateResult:
        """
        Apply many outcomes with one bulk read and one bulk write.

        Updates for the same pattern are applied in timestamp order with decay
        between them. Unknown IDs are reported in ``errors``; they never abort
        the batch.
        """
        started = perf_counter()
        store = self._require_store()
        now = _utcnow()
        result = BatchUpdateResult()

        grouped: dict[str, list[TrustUpdate]] = defaultdict(list)
        for raw in updates:
            try:
                update = raw if isinstance(raw, TrustUpdate) else TrustUpdate.model_validate(raw)
            except ValueError as exc:
                pattern_id = str(raw.get("pattern_id", "")) if isinstance(raw, dict) else ""
                result.failed += 1
                result.errors.append(BatchError(pattern_id=pattern_id, reason=f"invalid update: {exc}"))
                continue
            grouped[update.pattern_id].append(update)

        patterns = store.get_many(grouped.keys())
        pending: dict[str, TrustParams] = {}
        counts: dict[str, int] = {}
        for pattern_id, items in grouped.items():
            pattern = patterns.get(pattern_id)
            if pattern is None:
                result.failed += len(items)
                result.errors.append(BatchError(pattern_id=pattern_id, reason="pattern not found"))
                continue
            trust = pattern.trust
            for update in sorted(items, key=lambda item: item.timestamp or now):
                trust = self._apply_outcome(pattern, trust, update.outcome, update.timestamp or now)
            pending[pattern_id] = trust
            counts[pattern_id] = len(items)

        if pending:
            result.updated += self._flush(store, pending, counts, result)
        self._interval_cache.invalidate_many(grouped.keys())
        result.duration_ms = (perf_counter() - started) * 1000.0
        logger.debug(
            "batch_update updated=%s failed=%s took_ms=%.2f",
            result.updated,
            result.failed,
            result.duration_ms,
        )
        return result

    def _flush(
        self,
        store: PatternStore,
        pending: dict[str, TrustParams],
        counts: dict[str, int],
        result: BatchUpdateResult,
    ) -> int:
        try:
            store.save_many(pending)
            return sum(counts.values())
        except Exception as exc:  # fall back to per-pattern writes
            logger.warning("bulk trust save failed (%s); retrying per pattern", exc)
        saved = 0
        for pattern_id, trust in pending.items():
            try:
                store.save(pattern_id, trust)
                saved += counts[pattern_id]
            except Exception as exc:
                result.failed += counts[pattern_id]
                result.errors.append(
                    BatchError(pattern_id=pattern_id, reason=f"save failed: {exc}")
                )
        return saved

    def _apply_outcome(
        self, pattern: Pattern, trust: TrustParams, outcome: bool, at: datetime
    ) -> TrustParams:
        alpha, beta = trust.alpha, trust.beta
        elapsed = days_between(trust.last_updated, at)
        if elapsed > 0:
            alpha, beta = decay_params(
                alpha,
                beta,
                elapsed,
                self.half_life_for(pattern),
                self.prior_alpha,
                self.prior_beta,
            )
        if outcome:
            alpha += 1.0
        else:
            beta += 1.0
        last_updated = at if trust.last_updated is None else max(trust.last_updated, at)
        return TrustParams(alpha=alpha, beta=beta, last_updated=last_updated)

    # ---- Cache -------------------------------------------------------------
    def invalidate(self, pattern_id: str) -> None:
        self._interval_cache.invalidate(pattern_id)

    def clear_cache(self) -> None:
        self._interval_cache.clear()


__all__ = [
    "TrustEstimator",
    "decay_factor",
    "decay_params",
    "wilson_lower_bound",
    "beta_quantile",
    "credible_interval",
    "days_between",
]
