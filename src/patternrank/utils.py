"""Shared helpers for query signatures, path normalization, and byte accounting."""

from __future__ import annotations

import hashlib
import json
from typing import Any

FUZZY_MAX_CHARS = 128


def canonical_json(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def hash_payload(payload: Any) -> str:
    raw = canonical_json(payload).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def compact_json(item: Any) -> str:
    return json.dumps(item, separators=(",", ":"), ensure_ascii=False)


def json_size(item: Any) -> int:
    """Byte length of ``item`` in the compact encoding used for budgets."""
    return len(compact_json(item).encode("utf-8"))


def truncate_field(value: str, max_chars: int) -> str:
    if max_chars <= 0:
        return ""
    if len(value) <= max_chars:
        return value
    ellipsis = "..." if max_chars > 3 else ""
    slice_len = max_chars - len(ellipsis)
    return value[:slice_len] + ellipsis


def normalize_path(path: str) -> str:
    """
    Normalize a repo-relative path for glob matching.

    Examples:
        "./src/api/x.ts" -> "src/api/x.ts"
        "src\\api\\x.ts" -> "src/api/x.ts"
    """
    value = (path or "").strip().replace("\\", "/")
    while value.startswith("./"):
        value = value[2:]
    return value.lstrip("/")


class EditDistanceMatcher:
    """
    Levenshtein distance against a fixed reference string.

    The reference is encoded once as per-character bitmasks so that each
    comparison runs in O(len(other)) big-int operations (Hyyro's bit-parallel
    formulation of Myers' algorithm). Both sides are lowercased and clipped to
    ``max_chars``.
    """

    def __init__(self, reference: str, max_chars: int | None = FUZZY_MAX_CHARS) -> None:
        self.max_chars = max_chars
        self.reference = self._clip(reference)
        self._length = len(self.reference)
        self._mask = (1 << self._length) - 1
        self._last = 1 << (self._length - 1) if self._length else 0
        peq: dict[str, int] = {}
        for idx, ch in enumerate(self.reference):
            peq[ch] = peq.get(ch, 0) | (1 << idx)
        self._peq = peq

    def _clip(self, value: str) -> str:
        text = (value or "").strip().lower()
        if self.max_chars is None:
            return text
        return text[: self.max_chars]

    def distance(self, other: str) -> int:
        text = self._clip(other)
        if not self._length:
            return len(text)
        if not text:
            return self._length
        mask = self._mask
        last = self._last
        vp = mask
        vn = 0
        dist = self._length
        for ch in text:
            x = self._peq.get(ch, 0)
            d0 = (((x & vp) + vp) ^ vp) | x | vn
            hp = vn | ~(d0 | vp)
            hn = d0 & vp
            if hp & last:
                dist += 1
            elif hn & last:
                dist -= 1
            hp = (hp << 1) | 1
            hn = hn << 1
            vp = (hn | ~(d0 | hp)) & mask
            vn = hp & d0 & mask
        return dist

    def ratio(self, other: str) -> float:
        """Normalized similarity ``1 - distance / max_len`` in [0, 1]."""
        text = self._clip(other)
        if not self._length or not text:
            return 0.0
        max_len = max(self._length, len(text))
        return max(0.0, 1.0 - self.distance(text) / max_len)


def levenshtein_distance(left: str, right: str) -> int:
    """Case-insensitive Levenshtein distance without clipping."""
    return EditDistanceMatcher(left, max_chars=None).distance(right)


def similarity_ratio(left: str, right: str) -> float:
    """Normalized edit-distance similarity in [0, 1], case-insensitive."""
    return EditDistanceMatcher(left).ratio(right)


__all__ = [
    "canonical_json",
    "hash_payload",
    "compact_json",
    "json_size",
    "truncate_field",
    "normalize_path",
    "EditDistanceMatcher",
    "levenshtein_distance",
    "similarity_ratio",
]
