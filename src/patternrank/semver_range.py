"""npm-style semver ranges evaluated with python-semver versions."""

from __future__ import annotations

import operator
import re
from dataclasses import dataclass
from typing import Callable

from semver import Version

from .errors import MalformedScopeError

_WILDCARDS = {"x", "X", "*"}
_PARTIAL_RE = re.compile(
    r"^v?(?P<major>\d+|[xX*])"
    r"(?:\.(?P<minor>\d+|[xX*]))?"
    r"(?:\.(?P<patch>\d+|[xX*]))?"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?"
    r"(?:\+[0-9A-Za-z.-]+)?$"
)
_COMPARATOR_RE = re.compile(r"^(?P<op>\^|~>?|>=|<=|>|<|=)?\s*(?P<partial>.*)$")
_HYPHEN_RE = re.compile(r"^\s*(?P<low>\S+)\s+-\s+(?P<high>\S+)\s*$")

_OPS: dict[str, Callable[[Version, Version], bool]] = {
    ">=": operator.ge,
    ">": operator.gt,
    "<=": operator.le,
    "<": operator.lt,
    "=": operator.eq,
}


@dataclass(frozen=True)
class _Partial:
    major: int | None
    minor: int | None
    patch: int | None
    prerelease: str | None = None

    def floor(self) -> Version:
        return Version(
            self.major or 0,
            self.minor or 0,
            self.patch or 0,
            prerelease=self.prerelease if self.patch is not None else None,
        )

    @property
    def is_full(self) -> bool:
        return self.patch is not None


Bound = tuple[str, Version]


def _parse_partial(text: str, source: str) -> _Partial:
    match = _PARTIAL_RE.match(text.strip())
    if not match:
        raise MalformedScopeError(f"invalid version in range {source!r}: {text!r}")
    parts: list[int | None] = []
    wildcard_seen = False
    for name in ("major", "minor", "patch"):
        raw = match.group(name)
        if raw is None or raw in _WILDCARDS:
            wildcard_seen = True
            parts.append(None)
            continue
        if wildcard_seen:
            raise MalformedScopeError(f"invalid version in range {source!r}: {text!r}")
        parts.append(int(raw))
    return _Partial(parts[0], parts[1], parts[2], match.group("pre"))


def _upper_of(partial: _Partial) -> Version | None:
    """Exclusive upper bound of an x-range such as ``1.2.x``."""
    if partial.major is None:
        return None
    if partial.minor is None:
        return Version(partial.major + 1, 0, 0)
    if partial.patch is None:
        return Version(partial.major, partial.minor + 1, 0)
    return None


def _caret(partial: _Partial) -> list[Bound]:
    if partial.major is None:
        return []
    low = partial.floor()
    if partial.major > 0 or partial.minor is None:
        high = Version(partial.major + 1, 0, 0)
    elif partial.minor > 0 or partial.patch is None:
        high = Version(0, partial.minor + 1, 0)
    else:
        high = Version(0, 0, partial.patch + 1)
    return [(">=", low), ("<", high)]


def _tilde(partial: _Partial) -> list[Bound]:
    if partial.major is None:
        return []
    low = partial.floor()
    if partial.minor is None:
        high = Version(partial.major + 1, 0, 0)
    else:
        high = Version(partial.major, partial.minor + 1, 0)
    return [(">=", low), ("<", high)]


def _comparator(op: str, partial: _Partial) -> list[Bound]:
    if partial.major is None:
        # "*" or ">=*": any version; "<*" or ">*": nothing
        return [] if op in ("", "=", ">=", "<=") else [("<", Version(0, 0, 0))]
    if op in ("", "="):
        if partial.is_full:
            return [("=", partial.floor())]
        return [(">=", partial.floor()), ("<", _upper_of(partial))]  # type: ignore[list-item]
    if partial.is_full:
        return [(op, partial.floor())]
    upper = _upper_of(partial)
    if op == ">":
        return [(">=", upper)]  # type: ignore[list-item]
    if op == ">=":
        return [(">=", partial.floor())]
    if op == "<":
        return [("<", partial.floor())]
    return [("<", upper)]  # type: ignore[list-item]


def _hyphen(low: _Partial, high: _Partial) -> list[Bound]:
    bounds: list[Bound] = []
    if low.major is not None:
        bounds.append((">=", low.floor()))
    if high.major is not None:
        if high.is_full:
            bounds.append(("<=", high.floor()))
        else:
            bounds.append(("<", _upper_of(high)))  # type: ignore[arg-type]
    return bounds


def _parse_set(text: str, source: str) -> list[Bound]:
    hyphen = _HYPHEN_RE.match(text)
    if hyphen:
        return _hyphen(
            _parse_partial(hyphen.group("low"), source),
            _parse_partial(hyphen.group("high"), source),
        )
    # glue operators to their version: ">= 1.2" -> ">=1.2"
    tokens = re.sub(r"(\^|~>?|>=|<=|>|<|=)\s+", r"\1", text.strip()).split()
    bounds: list[Bound] = []
    for token in tokens:
        match = _COMPARATOR_RE.match(token)
        if not match or not match.group("partial"):
            raise MalformedScopeError(f"invalid comparator in range {source!r}: {token!r}")
        op = match.group("op") or ""
        partial = _parse_partial(match.group("partial"), source)
        if op == "^":
            bounds.extend(_caret(partial))
        elif op.startswith("~"):
            bounds.extend(_tilde(partial))
        else:
            bounds.extend(_comparator(op, partial))
    return bounds


class SemverRange:
    """
    A parsed npm-style range such as ``^18.0.0``, ``>=1.2 <2``,
    ``1.2.x || ~2.0`` or ``1.0.0 - 1.4``.

    Raises MalformedScopeError when the text cannot be parsed.
    """

    def __init__(self, text: str) -> None:
        if text is None:
            raise MalformedScopeError("range must be a string")
        self.text = text.strip()
        self._sets: list[list[Bound]] = []
        alternatives = self.text.split("||") if self.text else [""]
        for alternative in alternatives:
            if not alternative.strip():
                if len(alternatives) > 1:
                    raise MalformedScopeError(f"empty alternative in range {text!r}")
                self._sets.append([])
                continue
            self._sets.append(_parse_set(alternative, text))

    def satisfied_by(self, version: Version | str) -> bool:
        if not isinstance(version, Version):
            version = parse_version(version)
        for bounds in self._sets:
            if all(_OPS[op](version, bound) for op, bound in bounds):
                return True
        return False

    def __repr__(self) -> str:
        return f"SemverRange({self.text!r})"


def parse_version(text: str) -> Version:
    """Parse ``1.2.3``, ``v1.2.3``, ``18`` or ``18.2`` into a Version."""
    if not isinstance(text, str):
        raise MalformedScopeError(f"invalid version: {text!r}")
    cleaned = text.strip().lstrip("=").lstrip("vV").strip()
    try:
        return Version.parse(cleaned, optional_minor_and_patch=True)
    except (TypeError, ValueError) as exc:
        raise MalformedScopeError(f"invalid version: {text!r}") from exc


def satisfies(version: str, range_text: str) -> bool:
    return SemverRange(range_text).satisfied_by(version)


__all__ = ["SemverRange", "parse_version", "satisfies"]
