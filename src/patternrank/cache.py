"""Bounded in-process caches: plain LRU, TTL result cache, and session usage."""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Generic, Hashable, Iterable, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")

Clock = Callable[[], float]

DEFAULT_RESULT_TTL_SECONDS = 5 * 60
DEFAULT_SESSION_TTL_SECONDS = 30 * 60


class LRUCache(Generic[V]):
    """Thread-safe LRU map with a fixed capacity."""

    def __init__(self, max_entries: int = 1_000) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self._data: OrderedDict[Hashable, V] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> V | None:
        with self._lock:
            try:
                value = self._data[key]
            except KeyError:
                return None
            self._data.move_to_end(key)
            return value

    def set(self, key: Hashable, value: V) -> None:
        with self._lock:
            self._data[key] = value
            self._data.move_to_end(key)
            while len(self._data) > self.max_entries:
                self._data.popitem(last=False)

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._data.pop(key, None)

    def invalidate_many(self, keys: Iterable[Hashable]) -> None:
        with self._lock:
            for key in keys:
                self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class ResultCache(Generic[V]):
    """
    LRU map whose entries expire ``ttl_seconds`` after their last ``set``.

    Reads never extend an entry's lifetime. Expired entries are dropped when
    they are read and swept in bulk on every write, so memory stays bounded
    without a background timer.
    """

    def __init__(
        self,
        max_entries: int = 256,
        ttl_seconds: float = DEFAULT_RESULT_TTL_SECONDS,
        *,
        clock: Clock = time.monotonic,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._data: OrderedDict[str, tuple[float, V]] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> V | None:
        now = self._clock()
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                self.misses += 1
                return None
            expires_at, value = entry
            if expires_at <= now:
                del self._data[key]
                self.misses += 1
                return None
            self._data.move_to_end(key)
            self.hits += 1
            return value

    def set(self, key: str, value: V) -> None:
        now = self._clock()
        with self._lock:
            self._sweep(now)
            self._data[key] = (now + self.ttl_seconds, value)
            self._data.move_to_end(key)
            while len(self._data) > self.max_entries:
                evicted, _ = self._data.popitem(last=False)
                logger.debug("result cache evicted %s", evicted)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def sweep(self) -> int:
        with self._lock:
            return self._sweep(self._clock())

    def _sweep(self, now: float) -> int:
        expired = [key for key, (expires_at, _) in self._data.items() if expires_at <= now]
        for key in expired:
            del self._data[key]
        return len(expired)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {"size": len(self._data), "hits": self.hits, "misses": self.misses}

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class SessionTracker:
    """Pattern IDs used per session, each remembered for ``ttl_seconds``."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_SESSION_TTL_SECONDS,
        max_sessions: int = 1_024,
        *,
        clock: Clock = time.monotonic,
    ) -> None:
        self._sessions: ResultCache[dict[str, float]] = ResultCache(
            max_entries=max_sessions, ttl_seconds=ttl_seconds, clock=clock
        )
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()

    def record(self, session_id: str, pattern_ids: Iterable[str]) -> None:
        now = self._clock()
        with self._lock:
            usage = dict(self._sessions.get(session_id) or {})
            for pattern_id in pattern_ids:
                usage[pattern_id] = now
            self._sessions.set(session_id, usage)

    def recent(self, session_id: str | None) -> frozenset[str]:
        if not session_id:
            return frozenset()
        usage = self._sessions.get(session_id)
        if not usage:
            return frozenset()
        cutoff = self._clock() - self.ttl_seconds
        return frozenset(pattern_id for pattern_id, used_at in usage.items() if used_at > cutoff)

    def forget(self, session_id: str) -> None:
        self._sessions.invalidate(session_id)


__all__ = [
    "LRUCache",
    "ResultCache",
    "SessionTracker",
    "DEFAULT_RESULT_TTL_SECONDS",
    "DEFAULT_SESSION_TTL_SECONDS",
]
