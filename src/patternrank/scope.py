"""Eligibility checks for a pattern against the caller's task scope."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Iterable, Sequence

from pathspec import PathSpec

from .cache import LRUCache
from .errors import MalformedScopeError
from .models import Pattern, Signals
from .semver_range import SemverRange, parse_version
from .utils import normalize_path

logger = logging.getLogger(__name__)

LANGUAGE_ALIASES: dict[str, str] = {
    "js": "javascript",
    "jsx": "javascript",
    "mjs": "javascript",
    "cjs": "javascript",
    "node": "javascript",
    "nodejs": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "py": "python",
    "rb": "ruby",
    "yml": "yaml",
    "kt": "kotlin",
    "cs": "csharp",
    "c++": "cpp",
    "golang": "go",
}


def canonical_language(name: str) -> str:
    key = name.strip().lower()
    return LANGUAGE_ALIASES.get(key, key)


def canonical_languages(names: Iterable[str]) -> frozenset[str]:
    return frozenset(canonical_language(name) for name in names if name and name.strip())


def _check_brackets(glob: str) -> None:
    depth = 0
    escaped = False
    for ch in glob:
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == "[":
            depth += 1
        elif ch == "]" and depth:
            depth -= 1
    if depth:
        raise MalformedScopeError(f"unbalanced '[' in glob {glob!r}")


GLOBSTAR = "**"
GLOB_CHARS = frozenset("*?[")


class GlobMatcher:
    """
    Root-anchored glob matched against a whole file path, segment by segment.

    Literal segments compare as strings and wildcard segments use a
    single-segment gitignore spec, so ``*`` never crosses a ``/``. ``**``
    consumes zero or more whole segments. A path below a matched directory
    does not match unless the glob says so with a trailing ``**``.
    """

    def __init__(self, glob: str, segments: Sequence[str | PathSpec | None]) -> None:
        self.glob = glob
        self.segments = tuple(segments)

    def match_file(self, path: str) -> bool:
        parts = [part for part in path.split("/") if part]
        return bool(parts) and self._match(0, parts, 0)

    def _match(self, seg_idx: int, parts: list[str], part_idx: int) -> bool:
        segments = self.segments
        while seg_idx < len(segments):
            segment = segments[seg_idx]
            if segment is None:
                if seg_idx == len(segments) - 1:
                    return True
                return any(
                    self._match(seg_idx + 1, parts, start)
                    for start in range(part_idx, len(parts) + 1)
                )
            if part_idx >= len(parts):
                return False
            part = parts[part_idx]
            if isinstance(segment, str):
                if segment != part:
                    return False
            elif not segment.match_file(part):
                return False
            seg_idx += 1
            part_idx += 1
        return part_idx == len(parts)

    def __repr__(self) -> str:
        return f"GlobMatcher({self.glob!r})"


def _compile_segment(segment: str) -> str | PathSpec | None:
    if segment == GLOBSTAR:
        return None
    if not GLOB_CHARS.intersection(segment):
        return segment
    return PathSpec.from_lines("gitignore", ["/" + segment])


def compile_glob(glob: str) -> GlobMatcher:
    """
    Compile one scope glob into a root-anchored matcher.

    ``*`` stays inside one path segment and ``**`` spans any depth. A trailing
    ``/`` means everything below that directory. Raises MalformedScopeError
    for empty globs, unbalanced brackets, and gitignore control syntax
    (negation, comments).
    """
    if not isinstance(glob, str) or not glob.strip():
        raise MalformedScopeError("empty glob")
    text = glob.strip().replace("\\", "/")
    while text.startswith("./"):
        text = text[2:]
    if text.startswith(("!", "#")):
        raise MalformedScopeError(f"unsupported glob syntax: {glob!r}")
    _check_brackets(text)
    if text.endswith("/"):
        text += GLOBSTAR
    segments: list[str | PathSpec | None] = []
    for raw in text.split("/"):
        if not raw or (raw == GLOBSTAR and segments and segments[-1] is None):
            continue
        try:
            segments.append(_compile_segment(raw))
        except (ValueError, TypeError, re.error) as exc:
            raise MalformedScopeError(f"invalid glob {glob!r}: {exc}") from exc
    if not segments:
        raise MalformedScopeError(f"empty glob {glob!r}")
    return GlobMatcher(glob, segments)


class ScopeFilter:
    """
    Decides whether a pattern applies to the caller's scope.

    Every sub-check fails closed on malformed scope data: the offending glob,
    range or version is logged and treated as a non-match, while the other
    sub-checks (and other globs of the same pattern) still run. Compiled globs
    and ranges are memoized per instance.
    """

    def __init__(self, cache_size: int = 4_096) -> None:
        self._globs: LRUCache[GlobMatcher | MalformedScopeError] = LRUCache(cache_size)
        self._ranges: LRUCache[SemverRange | MalformedScopeError] = LRUCache(cache_size)

    def matches(self, pattern: Pattern, signals: Signals, now: datetime | None = None) -> bool:
        return (
            self.matches_paths(pattern, signals)
            and self.matches_languages(pattern, signals)
            and self.matches_frameworks(pattern, signals)
            and self.matches_ownership(pattern, signals)
            and self.matches_recency(pattern, signals, now)
        )

    def filter(
        self, patterns: Iterable[Pattern], signals: Signals, now: datetime | None = None
    ) -> list[Pattern]:
        now = now or datetime.now(timezone.utc)
        return [pattern for pattern in patterns if self.matches(pattern, signals, now)]

    # ---- Sub-checks ----------------------------------------------------------
    def matches_paths(self, pattern: Pattern, signals: Signals) -> bool:
        if not pattern.scope.paths or not signals.paths:
            return True
        paths = [normalize_path(path) for path in signals.paths]
        paths = [path for path in paths if path]
        if not paths:
            return True
        for glob in pattern.scope.paths:
            spec = self._glob(glob, pattern.id)
            if spec is None:
                continue
            if any(spec.match_file(path) for path in paths):
                return True
        return False

    def matches_languages(self, pattern: Pattern, signals: Signals) -> bool:
        if not pattern.scope.languages or not signals.languages:
            return True
        return bool(
            canonical_languages(pattern.scope.languages) & canonical_languages(signals.languages)
        )

    def matches_frameworks(self, pattern: Pattern, signals: Signals) -> bool:
        if not pattern.scope.frameworks or not signals.frameworks:
            return True
        versions: dict[str, list[str | None]] = {}
        for framework in signals.frameworks:
            versions.setdefault(framework.name, []).append(framework.version)
        for required in pattern.scope.frameworks:
            if required.name not in versions or not (required.range or "").strip():
                continue
            semver_range = self._range(required.range, pattern.id)
            if semver_range is None:
                return False
            if not any(
                self._version_satisfies(semver_range, version, pattern.id)
                for version in versions[required.name]
            ):
                return False
        return True

    def matches_ownership(self, pattern: Pattern, signals: Signals) -> bool:
        for declared, given in (
            (pattern.metadata.repo, signals.repo),
            (pattern.metadata.org, signals.org),
        ):
            if declared and declared.strip():
                if not given or given.strip().lower() != declared.strip().lower():
                    return False
        return True

    def matches_recency(
        self, pattern: Pattern, signals: Signals, now: datetime | None = None
    ) -> bool:
        if signals.max_age_days is None:
            return True
        reviewed = pattern.metadata.last_reviewed
        if reviewed is None:
            return False
        now = now or datetime.now(timezone.utc)
        return reviewed >= now - timedelta(days=signals.max_age_days)

    # ---- Memoized parsing ------------------------------------------------------
    def _glob(self, glob: str, pattern_id: str) -> GlobMatcher | None:
        compiled = self._globs.get(glob)
        if compiled is None:
            try:
                compiled = compile_glob(glob)
            except MalformedScopeError as exc:
                compiled = exc
            self._globs.set(glob, compiled)
        if isinstance(compiled, MalformedScopeError):
            logger.warning("pattern %s: skipping glob: %s", pattern_id, compiled)
            return None
        return compiled

    def _range(self, text: str, pattern_id: str) -> SemverRange | None:
        parsed = self._ranges.get(text)
        if parsed is None:
            try:
                parsed = SemverRange(text)
            except MalformedScopeError as exc:
                parsed = exc
            self._ranges.set(text, parsed)
        if isinstance(parsed, MalformedScopeError):
            logger.warning("pattern %s: framework range rejected: %s", pattern_id, parsed)
            return None
        return parsed

    @staticmethod
    def _version_satisfies(semver_range: SemverRange, version: str | None, pattern_id: str) -> bool:
        if not version or not version.strip():
            return True
        try:
            return semver_range.satisfied_by(parse_version(version))
        except MalformedScopeError as exc:
            logger.warning("pattern %s: framework version rejected: %s", pattern_id, exc)
            return False

    def clear(self) -> None:
        self._globs.clear()
        self._ranges.clear()


__all__ = [
    "ScopeFilter",
    "compile_glob",
    "canonical_language",
    "canonical_languages",
    "LANGUAGE_ALIASES",
]
