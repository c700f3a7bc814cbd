"""Keyword tags, themes, and component names extracted from text and paths."""

from __future__ import annotations

import posixpath
import re
from typing import Iterable

from .utils import normalize_path

MAX_TAGS = 20

KEYWORD_TAGS: dict[str, re.Pattern[str]] = {
    "cache": re.compile(r"\b(cache|caching|cached|redis|memcache|lru)\b", re.I),
    "api": re.compile(r"\b(api|endpoint|rest|graphql|http|request|response)\b", re.I),
    "auth": re.compile(r"\b(auth|authentication|authorization|jwt|token|login|session)\b", re.I),
    "database": re.compile(r"\b(database|db|sql|sqlite|postgres|mysql|mongodb|query)\b", re.I),
    "test": re.compile(r"\b(test|testing|tests|jest|pytest|unit|integration|coverage)\b", re.I),
    "ui": re.compile(r"\b(ui|frontend|react|vue|angular|component|button|form|modal)\b", re.I),
    "performance": re.compile(r"\b(performance|optimization|speed|slow|fast|optimize|perf)\b", re.I),
    "error": re.compile(r"\b(error|exception|bug|crash|failure|fix|issue)\b", re.I),
    "search": re.compile(r"\b(search|searching|find|lookup|query|match|similarity)\b", re.I),
    "migration": re.compile(r"\b(migration|migrate|migrating|upgrade|schema|version)\b", re.I),
}

THEMES: dict[str, re.Pattern[str]] = {
    "performance": re.compile(r"\b(slow|optimize|performance|speed|cache|async)\b", re.I),
    "security": re.compile(r"\b(security|secure|auth|permission|access|token|jwt)\b", re.I),
    "refactor": re.compile(r"\b(refactor|restructure|reorganize|clean|improve)\b", re.I),
    "bugfix": re.compile(r"\b(fix|bug|error|issue|crash|failure|broken)\b", re.I),
    "feature": re.compile(r"\b(implement|add|create|new|feature|build)\b", re.I),
    "testing": re.compile(r"\b(test|coverage|jest|pytest|unit|integration)\b", re.I),
    "documentation": re.compile(r"\b(document|docs|readme|comment|explain)\b", re.I),
    "optimization": re.compile(r"\b(optimize|improve|enhance|speed|performance)\b", re.I),
}

# (path fragment, component) in check order
COMPONENT_MARKERS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("src/api/", "routes/"), "api"),
    (("src/ui/", "components/"), "ui"),
    (("src/auth/", "authentication/"), "auth-service"),
    (("src/database/", "models/"), "database"),
    (("src/cache/", "redis/"), "cache-layer"),
    (("tests/", "test/"), "test-suite"),
    (("src/storage/", "repositories/"), "storage"),
    (("src/intelligence/",), "intelligence"),
    (("src/search/",), "search"),
)
SERVICE_RE = re.compile(r"src/services/([^/]+)")
SOURCE_EXT_RE = re.compile(r"\.(ts|js|tsx|jsx|py)$")
GLOB_CHARS = set("*?[")


def extract_tags(text: str | None) -> frozenset[str]:
    if not text:
        return frozenset()
    tags = [tag for tag, pattern in KEYWORD_TAGS.items() if pattern.search(text)]
    return frozenset(tags[:MAX_TAGS])


def detect_themes(text: str | None) -> frozenset[str]:
    if not text:
        return frozenset()
    return frozenset(theme for theme, pattern in THEMES.items() if pattern.search(text))


def detect_components(paths: Iterable[str]) -> frozenset[str]:
    components: set[str] = set()
    for raw in paths:
        path = "/" + normalize_path(raw)
        for fragments, component in COMPONENT_MARKERS:
            if any(f"/{fragment}" in path for fragment in fragments):
                components.add(component)
        service = SERVICE_RE.search(path)
        if service:
            components.add(f"{SOURCE_EXT_RE.sub('', service.group(1))}-service")
    return frozenset(components)


def literal_prefix(glob: str) -> str:
    """
    Leading path segments of ``glob`` that contain no wildcard.

    Examples:
        "src/api/**" -> "src/api"
        "src/api/*.ts" -> "src/api"
        "**/*.py" -> ""
    """
    segments: list[str] = []
    for segment in normalize_path(glob).split("/"):
        if not segment or any(ch in GLOB_CHARS for ch in segment):
            break
        segments.append(segment)
    return "/".join(segments)


def path_components(paths: Iterable[str]) -> frozenset[str]:
    """
    File-path features compared between a query and a pattern scope.

    For every path: the path itself, each enclosing directory (with a trailing
    slash), ``*.ext`` and the basename. Directory prefixes make a pattern
    scoped to ``src/api/**`` overlap more with ``src/api/x.ts`` than one scoped
    to ``src/**``.
    """
    features: set[str] = set()
    for raw in paths:
        path = normalize_path(raw)
        if not path:
            continue
        features.add(path)
        directory = posixpath.dirname(path)
        while directory:
            features.add(directory + "/")
            directory = posixpath.dirname(directory)
        basename = posixpath.basename(path)
        if basename:
            features.add(basename)
            _, ext = posixpath.splitext(basename)
            if ext:
                features.add("*" + ext)
    return frozenset(features)


def scope_path_components(globs: Iterable[str]) -> frozenset[str]:
    """``path_components`` for glob scopes: literal prefixes plus literal extensions."""
    features: set[str] = set()
    for glob in globs:
        path = normalize_path(glob)
        if not any(ch in GLOB_CHARS for ch in path):
            features |= path_components([path])
            continue
        directory = literal_prefix(path)
        while directory:
            features.add(directory + "/")
            directory = posixpath.dirname(directory)
        tail = posixpath.basename(path)
        _, ext = posixpath.splitext(tail)
        if ext and not any(ch in GLOB_CHARS for ch in ext):
            features.add("*" + ext)
        if tail and not any(ch in GLOB_CHARS for ch in tail):
            features.add(tail)
    return frozenset(features)


__all__ = [
    "extract_tags",
    "detect_themes",
    "detect_components",
    "literal_prefix",
    "path_components",
    "scope_path_components",
]
