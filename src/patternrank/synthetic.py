"""Deterministic random pattern pools for benchmarks and load tests."""

from __future__ import annotations

import hashlib
import random
from datetime import datetime, timedelta, timezone

from .models import (
    FrameworkRange,
    FrameworkSignal,
    Pattern,
    PatternMetadata,
    PatternScope,
    PatternType,
    Signals,
    TrustParams,
)

WORDS = [
    "cache",
    "api",
    "auth",
    "token",
    "database",
    "query",
    "test",
    "coverage",
    "component",
    "performance",
    "error",
    "retry",
    "search",
    "migration",
    "schema",
    "session",
    "handler",
    "router",
    "validation",
    "refactor",
]

DIRECTORIES = [
    "src/api",
    "src/ui",
    "src/auth",
    "src/cache",
    "src/database",
    "src/search",
    "src/storage",
    "src/services/billing",
    "src/services/payments",
    "tests",
    "lib",
]
GLOB_TAILS = ["**", "*.ts", "**/*.py", "*.tsx", "**/*.js"]
LANGUAGES = ["typescript", "javascript", "python", "go", "rust"]
FRAMEWORKS = [("react", "^18.0.0"), ("express", ">=4 <6"), ("django", "~4.2"), ("fastapi", "0.x")]
TAGS = ["cache", "api", "auth", "database", "test", "ui", "performance", "error", "search"]

EPOCH = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _seed(value: str) -> random.Random:
    digest = hashlib.sha1(value.encode("utf-8")).hexdigest()
    return random.Random(int(digest[:16], 16))


def _sentence(rng: random.Random, words: int) -> str:
    return " ".join(rng.choice(WORDS) for _ in range(words)).capitalize()


def generate_pattern(index: int, rng: random.Random) -> Pattern:
    pattern_type = rng.choice(list(PatternType))
    paths = tuple(
        f"{rng.choice(DIRECTORIES)}/{rng.choice(GLOB_TAILS)}" for _ in range(rng.randint(0, 2))
    )
    languages = rng.sample(LANGUAGES, k=rng.randint(0, 2))
    frameworks = tuple(
        FrameworkRange(name=name, range=version_range)
        for name, version_range in rng.sample(FRAMEWORKS, k=rng.randint(0, 1))
    )
    successes = rng.randint(0, 60)
    failures = rng.randint(0, 20)
    return Pattern(
        id=f"PAT:{pattern_type.value}:{index:06d}",
        type=pattern_type,
        title=_sentence(rng, rng.randint(3, 6)),
        summary=_sentence(rng, rng.randint(10, 24)),
        tags=frozenset(rng.sample(TAGS, k=rng.randint(0, 3))),
        scope=PatternScope(paths=paths, languages=frozenset(languages), frameworks=frameworks),
        trust=TrustParams(
            alpha=1.0 + successes,
            beta=1.0 + failures,
            last_updated=EPOCH + timedelta(days=rng.randint(0, 240)),
        ),
        metadata=PatternMetadata(
            last_reviewed=EPOCH + timedelta(days=rng.randint(0, 240)),
            half_life_days=rng.choice([30, 90, 180]),
        ),
    )


def generate_pool(size: int, seed: int | str = 0) -> list[Pattern]:
    """``size`` patterns; the same ``(size, seed)`` always yields the same pool."""
    if size < 0:
        raise ValueError("size must be non-negative")
    rng = _seed(f"pool:{seed}")
    return [generate_pattern(index, rng) for index in range(size)]


def generate_signals(seed: int | str = 0) -> Signals:
    rng = _seed(f"signals:{seed}")
    directory = rng.choice(DIRECTORIES)
    extension = rng.choice(["ts", "py", "tsx", "js"])
    framework, _ = rng.choice(FRAMEWORKS)
    return Signals(
        paths=(f"{directory}/{rng.choice(WORDS)}.{extension}",),
        languages=frozenset(rng.sample(LANGUAGES, k=rng.randint(1, 2))),
        frameworks=(
            FrameworkSignal(name=framework, version=f"{rng.randint(0, 18)}.{rng.randint(0, 9)}.0"),
        ),
        tags=frozenset(rng.sample(TAGS, k=2)),
        task=f"{rng.choice(['Fix', 'Add', 'Optimize', 'Refactor'])} {_sentence(rng, 4).lower()}",
    )


__all__ = ["generate_pool", "generate_pattern", "generate_signals"]
