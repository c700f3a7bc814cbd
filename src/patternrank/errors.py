"""Exception taxonomy for the ranking core."""

from __future__ import annotations


class PatternRankError(Exception):
    """Base class for every error raised by patternrank."""


class ValidationError(PatternRankError, ValueError):
    """Bad call-level input (k, budget_bytes, signals, trust counts)."""


class NotFoundError(PatternRankError, KeyError):
    """A pattern ID is unknown to the backing store."""

    def __init__(self, pattern_id: str) -> None:
        super().__init__(pattern_id)
        self.pattern_id = pattern_id

    def __str__(self) -> str:
        return f"pattern not found: {self.pattern_id}"


class MalformedScopeError(PatternRankError, ValueError):
    """A glob, semver range or version string on a pattern cannot be parsed."""


class CacheError(PatternRankError):
    """The result cache could not derive a signature for a query."""


class ConfigurationError(PatternRankError):
    """The service was asked to do something it was not configured for."""


__all__ = [
    "PatternRankError",
    "ValidationError",
    "NotFoundError",
    "MalformedScopeError",
    "CacheError",
    "ConfigurationError",
]
