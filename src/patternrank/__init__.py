"""Trust-aware ranking of reusable coding patterns against task context."""

from importlib import metadata

from .errors import (
    CacheError,
    ConfigurationError,
    MalformedScopeError,
    NotFoundError,
    PatternRankError,
    ValidationError,
)
from .models import Pattern, RankedResult, ScoredCandidate, Signals, TrustScore
from .service import RankingService


def get_version() -> str:
    try:
        return metadata.version("patternrank")
    except metadata.PackageNotFoundError:
        return "0.0.0"


__all__ = [
    "get_version",
    "RankingService",
    "Pattern",
    "Signals",
    "TrustScore",
    "ScoredCandidate",
    "RankedResult",
    "PatternRankError",
    "ValidationError",
    "NotFoundError",
    "MalformedScopeError",
    "CacheError",
    "ConfigurationError",
]
