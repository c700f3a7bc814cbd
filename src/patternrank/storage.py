"""Pattern store interface plus in-memory and Redis adapters."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Iterable, Mapping

from redis import Redis

from .config import Settings
from .errors import NotFoundError
from .models import Pattern, TrustParams


class PatternStore(ABC):
    """
    Read/write boundary to the external pattern storage.

    ``get`` raises NotFoundError for unknown IDs. The bulk helpers default to
    looping over the single-item calls; adapters override them to batch I/O.
    """

    @abstractmethod
    def get(self, pattern_id: str) -> Pattern: ...

    @abstractmethod
    def save(self, pattern_id: str, trust: TrustParams) -> None: ...

    def get_many(self, pattern_ids: Iterable[str]) -> dict[str, Pattern]:
        found: dict[str, Pattern] = {}
        for pattern_id in pattern_ids:
            try:
                found[pattern_id] = self.get(pattern_id)
            except NotFoundError:
                continue
        return found

    def save_many(self, updates: Mapping[str, TrustParams]) -> None:
        for pattern_id, trust in updates.items():
            self.save(pattern_id, trust)


class InMemoryPatternStore(PatternStore):
    """Dict-backed store for tests and embedding callers."""

    def __init__(self, patterns: Iterable[Pattern] = ()) -> None:
        self._patterns: dict[str, Pattern] = {pattern.id: pattern for pattern in patterns}
        self._lock = threading.Lock()

    def put(self, pattern: Pattern) -> None:
        with self._lock:
            self._patterns[pattern.id] = pattern

    def get(self, pattern_id: str) -> Pattern:
        with self._lock:
            try:
                return self._patterns[pattern_id]
            except KeyError:
                raise NotFoundError(pattern_id) from None

    def get_many(self, pattern_ids: Iterable[str]) -> dict[str, Pattern]:
        with self._lock:
            return {
                pattern_id: self._patterns[pattern_id]
                for pattern_id in pattern_ids
                if pattern_id in self._patterns
            }

    def save(self, pattern_id: str, trust: TrustParams) -> None:
        with self._lock:
            pattern = self._patterns.get(pattern_id)
            if pattern is None:
                raise NotFoundError(pattern_id)
            self._patterns[pattern_id] = pattern.model_copy(update={"trust": trust})

    def save_many(self, updates: Mapping[str, TrustParams]) -> None:
        with self._lock:
            missing = [pattern_id for pattern_id in updates if pattern_id not in self._patterns]
            if missing:
                raise NotFoundError(missing[0])
            for pattern_id, trust in updates.items():
                self._patterns[pattern_id] = self._patterns[pattern_id].model_copy(
                    update={"trust": trust}
                )

    def all(self) -> list[Pattern]:
        with self._lock:
            return list(self._patterns.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._patterns)


class RedisPatternStore(PatternStore):
    """Patterns stored as JSON documents; bulk calls use one pipeline each."""

    def __init__(self, redis: Redis, settings: Settings) -> None:
        self.redis = redis
        self.settings = settings

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisPatternStore":
        return cls(Redis.from_url(settings.redis_url), settings)

    # ---- Key helpers -----------------------------------------------------
    def pattern_key(self, pattern_id: str) -> str:
        return f"h:pattern:{self.settings.redis_namespace}:{pattern_id}"

    def index_key(self) -> str:
        return f"s:patterns:{self.settings.redis_namespace}"

    @staticmethod
    def _decode(raw: bytes | str | None) -> Pattern | None:
        if not raw:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return Pattern.model_validate_json(raw)

    # ---- Persistence -----------------------------------------------------
    def put(self, pattern: Pattern) -> None:
        pipe = self.redis.pipeline(transaction=False)
        pipe.set(self.pattern_key(pattern.id), pattern.model_dump_json())
        pipe.sadd(self.index_key(), pattern.id)
        pipe.execute()

    def put_many(self, patterns: Iterable[Pattern]) -> None:
        pipe = self.redis.pipeline(transaction=False)
        for pattern in patterns:
            pipe.set(self.pattern_key(pattern.id), pattern.model_dump_json())
            pipe.sadd(self.index_key(), pattern.id)
        pipe.execute()

    def get(self, pattern_id: str) -> Pattern:
        pattern = self._decode(self.redis.get(self.pattern_key(pattern_id)))
        if pattern is None:
            raise NotFoundError(pattern_id)
        return pattern

    def get_many(self, pattern_ids: Iterable[str]) -> dict[str, Pattern]:
        ids = list(dict.fromkeys(pattern_ids))
        if not ids:
            return {}
        pipe = self.redis.pipeline(transaction=False)
        for pattern_id in ids:
            pipe.get(self.pattern_key(pattern_id))
        rows = pipe.execute()
        found: dict[str, Pattern] = {}
        for pattern_id, raw in zip(ids, rows):
            pattern = self._decode(raw)
            if pattern is not None:
                found[pattern_id] = pattern
        return found

    def save(self, pattern_id: str, trust: TrustParams) -> None:
        pattern = self.get(pattern_id)
        updated = pattern.model_copy(update={"trust": trust})
        self.redis.set(self.pattern_key(pattern_id), updated.model_dump_json())

    def save_many(self, updates: Mapping[str, TrustParams]) -> None:
        if not updates:
            return
        existing = self.get_many(updates.keys())
        missing = [pattern_id for pattern_id in updates if pattern_id not in existing]
        if missing:
            raise NotFoundError(missing[0])
        pipe = self.redis.pipeline(transaction=False)
        for pattern_id, trust in updates.items():
            updated = existing[pattern_id].model_copy(update={"trust": trust})
            pipe.set(self.pattern_key(pattern_id), updated.model_dump_json())
        pipe.execute()

    def load_pool(self) -> list[Pattern]:
        """Every stored pattern, ordered by ID."""
        members = self.redis.smembers(self.index_key())
        ids = sorted(
            member.decode("utf-8") if isinstance(member, bytes) else member for member in members
        )
        found = self.get_many(ids)
        return [found[pattern_id] for pattern_id in ids if pattern_id in found]

    def delete(self, pattern_id: str) -> None:
        pipe = self.redis.pipeline(transaction=False)
        pipe.delete(self.pattern_key(pattern_id))
        pipe.srem(self.index_key(), pattern_id)
        pipe.execute()


__all__ = ["PatternStore", "InMemoryPatternStore", "RedisPatternStore"]
