"""Configuration helpers shared across the ranking core."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings."""

    prior_alpha: float = Field(1.0, alias="PATTERNRANK_PRIOR_ALPHA", ge=1.0)
    prior_beta: float = Field(1.0, alias="PATTERNRANK_PRIOR_BETA", ge=1.0)
    half_life_days: int = Field(90, alias="PATTERNRANK_HALF_LIFE_DAYS", gt=0)
    interval_cache_size: int = Field(1_000, alias="PATTERNRANK_INTERVAL_CACHE_SIZE", gt=0)
    result_cache_ttl_seconds: float = Field(300.0, alias="PATTERNRANK_RESULT_CACHE_TTL", gt=0)
    result_cache_max_entries: int = Field(256, alias="PATTERNRANK_RESULT_CACHE_MAX", gt=0)
    session_ttl_seconds: float = Field(1_800.0, alias="PATTERNRANK_SESSION_TTL", gt=0)
    trust_weight: float = Field(0.5, alias="PATTERNRANK_TRUST_WEIGHT", ge=0.0, le=1.0)
    session_boost: float = Field(0.1, alias="PATTERNRANK_SESSION_BOOST", ge=0.0, le=1.0)
    default_k: int = Field(10, alias="PATTERNRANK_DEFAULT_K", gt=0)
    max_workers: int = Field(8, alias="PATTERNRANK_MAX_WORKERS", gt=0)
    shard_size: int = Field(512, alias="PATTERNRANK_SHARD_SIZE", gt=0)
    glob_cache_size: int = Field(4_096, alias="PATTERNRANK_GLOB_CACHE_SIZE", gt=0)
    redis_url: str = Field("redis://localhost:6379/0", alias="REDIS_URL")
    redis_namespace: str = Field("default", alias="PATTERNRANK_REDIS_NAMESPACE")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=(
            Path(__file__).resolve().parent.parent / ".env",
            Path.cwd() / ".env",
        ),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()  # type: ignore[call-arg]


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


__all__ = ["Settings", "get_settings", "configure_logging"]
