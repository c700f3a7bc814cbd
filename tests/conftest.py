from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from patternrank.models import Pattern, Signals

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_pattern(
    pattern_id: str,
    *,
    paths: list[str] | None = None,
    languages: list[str] | None = None,
    frameworks: list[dict[str, Any]] | None = None,
    alpha: float = 1.0,
    beta: float = 1.0,
    last_updated: datetime | None = None,
    type: str = "CODEBASE",
    title: str = "",
    summary: str = "",
    tags: list[str] | None = None,
    **metadata: Any,
) -> Pattern:
    return Pattern.model_validate(
        {
            "id": pattern_id,
            "type": type,
            "title": title,
            "summary": summary,
            "tags": tags or [],
            "scope": {
                "paths": paths or [],
                "languages": languages or [],
                "frameworks": frameworks or [],
            },
            "trust": {"alpha": alpha, "beta": beta, "last_updated": last_updated},
            "metadata": metadata,
        }
    )


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scenario_pool() -> list[Pattern]:
    return [
        make_pattern("A", paths=["src/api/**"], languages=["typescript"], alpha=9, beta=3),
        make_pattern("B", paths=["src/ui/**"]),
        make_pattern("C", paths=["src/**"], languages=["typescript"], alpha=2, beta=2),
    ]


@pytest.fixture
def scenario_signals() -> Signals:
    return Signals(paths=["src/api/x.ts"], languages=["typescript"])
