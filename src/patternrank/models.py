"""Pattern, query and ranking result models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils import compact_json, json_size, truncate_field

SUMMARY_PAYLOAD_CHARS = 240


class PatternType(str, Enum):
    LANG = "LANG"
    CODEBASE = "CODEBASE"
    ANTI = "ANTI"
    FAILURE = "FAILURE"
    POLICY = "POLICY"
    TEST = "TEST"
    MIGRATION = "MIGRATION"


def _ensure_aware(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _lower_set(value: Any) -> Any:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        value = [value]
    if isinstance(value, (list, tuple, set, frozenset)):
        return frozenset(str(item).strip().lower() for item in value if str(item).strip())
    return value


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class FrameworkRange(_Frozen):
    name: str
    range: str | None = None

    @field_validator("name", mode="before")
    def _normalize_name(cls, value: Any) -> Any:
        return str(value).strip().lower() if value is not None else value


class PatternScope(_Frozen):
    paths: tuple[str, ...] = ()
    languages: frozenset[str] = frozenset()
    frameworks: tuple[FrameworkRange, ...] = ()

    @field_validator("languages", mode="before")
    def _normalize_languages(cls, value: Any) -> Any:
        return _lower_set(value)


class TrustParams(_Frozen):
    alpha: float = Field(1.0, ge=1.0)
    beta: float = Field(1.0, ge=1.0)
    last_updated: datetime | None = None

    @field_validator("last_updated", mode="after")
    def _aware(cls, value: datetime | None) -> datetime | None:
        return _ensure_aware(value)


class PatternMetadata(_Frozen):
    last_reviewed: datetime | None = None
    half_life_days: int = Field(90, gt=0)
    repo: str | None = None
    org: str | None = None

    @field_validator("last_reviewed", mode="after")
    def _aware(cls, value: datetime | None) -> datetime | None:
        return _ensure_aware(value)


class Pattern(_Frozen):
    """Read-only snapshot of a stored pattern."""

    id: str = Field(min_length=1)
    type: PatternType
    title: str = ""
    summary: str = ""
    tags: frozenset[str] = frozenset()
    scope: PatternScope = Field(default_factory=PatternScope)
    trust: TrustParams = Field(default_factory=TrustParams)
    metadata: PatternMetadata = Field(default_factory=PatternMetadata)

    @field_validator("type", mode="before")
    def _normalize_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("tags", mode="before")
    def _normalize_tags(cls, value: Any) -> Any:
        return _lower_set(value)


class FrameworkSignal(_Frozen):
    name: str
    version: str | None = None

    @field_validator("name", mode="before")
    def _normalize_name(cls, value: Any) -> Any:
        return str(value).strip().lower() if value is not None else value


class Signals(_Frozen):
    """Task context a caller ranks patterns against."""

    paths: tuple[str, ...] = ()
    languages: frozenset[str] = frozenset()
    frameworks: tuple[FrameworkSignal, ...] = ()
    repo: str | None = None
    org: str | None = None
    tags: frozenset[str] = frozenset()
    task: str | None = None
    task_type: PatternType | None = None
    max_age_days: int | None = Field(default=None, gt=0)

    @field_validator("languages", "tags", mode="before")
    def _normalize_sets(cls, value: Any) -> Any:
        return _lower_set(value)

    @field_validator("task_type", mode="before")
    def _normalize_task_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper() or None
        return value

    def signature_payload(self) -> dict[str, Any]:
        """Canonical, order-independent form used for cache keys."""
        return {
            "paths": sorted({path.strip() for path in self.paths}),
            "languages": sorted(self.languages),
            "frameworks": sorted(
                f"{fw.name}@{(fw.version or '*').strip().lower()}" for fw in self.frameworks
            ),
            "repo": (self.repo or "").strip().lower(),
            "org": (self.org or "").strip().lower(),
            "tags": sorted(self.tags),
            "task": " ".join((self.task or "").lower().split()),
            "task_type": self.task_type.value if self.task_type else "",
            "max_age_days": self.max_age_days,
        }


class TrustScore(BaseModel):
    value: float
    confidence: float
    interval: tuple[float, float]
    wilson_lower: float
    samples: float
    alpha: float
    beta: float


class ScoredCandidate(BaseModel):
    pattern: Pattern
    trust_score: TrustScore
    overlap_score: float
    base_score: float
    blended_score: float
    session_boost: float = 0.0
    breakdown: dict[str, float] = Field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        """Compact form used for byte budgeting and transport."""
        return {
            "id": self.pattern.id,
            "type": self.pattern.type.value,
            "title": self.pattern.title,
            "summary": truncate_field(self.pattern.summary, SUMMARY_PAYLOAD_CHARS),
            "score": round(self.blended_score, 4),
            "trust": round(self.trust_score.wilson_lower, 4),
            "overlap": round(self.overlap_score, 4),
            "boost": round(self.session_boost, 4),
        }

    def payload_size(self) -> int:
        return json_size(self.to_payload())


class RankedMeta(BaseModel):
    considered: int = 0
    included: int = 0
    total: int = 0
    used_bytes: int = 0
    truncated: bool = False
    cache_hit: bool = False
    partial: bool = False
    took_ms: int | None = None


class RankedResult(BaseModel):
    candidates: list[ScoredCandidate] = Field(default_factory=list)
    meta: RankedMeta = Field(default_factory=RankedMeta)

    @property
    def ids(self) -> list[str]:
        return [candidate.pattern.id for candidate in self.candidates]

    def to_payload(self) -> list[dict[str, Any]]:
        return [candidate.to_payload() for candidate in self.candidates]

    def to_json(self) -> str:
        return compact_json(self.to_payload())

    def serialized_size(self) -> int:
        return len(self.to_json().encode("utf-8"))


class TrustUpdate(BaseModel):
    pattern_id: str
    outcome: bool
    timestamp: datetime | None = None

    @field_validator("timestamp", mode="after")
    def _aware(cls, value: datetime | None) -> datetime | None:
        return _ensure_aware(value)


class BatchError(BaseModel):
    pattern_id: str
    reason: str


class BatchUpdateResult(BaseModel):
    updated: int = 0
    failed: int = 0
    errors: list[BatchError] = Field(default_factory=list)
    duration_ms: float = 0.0


__all__ = [
    "PatternType",
    "FrameworkRange",
    "PatternScope",
    "TrustParams",
    "PatternMetadata",
    "Pattern",
    "FrameworkSignal",
    "Signals",
    "TrustScore",
    "ScoredCandidate",
    "RankedMeta",
    "RankedResult",
    "TrustUpdate",
    "BatchError",
    "BatchUpdateResult",
]
