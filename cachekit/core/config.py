"""cachekit.core.config

Two config surfaces only:
1) an optional YAML file (``CacheConfig.from_yaml``)
2) environment variables prefixed ``CACHEKIT_``

Everything else is derived.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from cachekit.core.exceptions import ConfigError


class SweepConfig(BaseModel):
    """Background expiration sweep."""

    interval_seconds: float = 1800.0

    @field_validator("interval_seconds")
    @classmethod
    def interval_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("interval_seconds must be > 0")
        return v

    @property
    def interval(self) -> timedelta:
        return timedelta(seconds=self.interval_seconds)


class WorkerConfig(BaseModel):
    """Worker pool running removals, teardown and background resolvers."""

    max_workers: int = 4

    @field_validator("max_workers")
    @classmethod
    def max_workers_at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_workers must be >= 1")
        return v


class WatcherConfig(BaseModel):
    """Defaults applied to watchers created without explicit options."""

    due_time_seconds: float = 15.0
    period_seconds: float = 120.0
    postpone_changed_seconds: float = 0.0
    http_timeout_seconds: float = 20.0

    @field_validator("due_time_seconds", "postpone_changed_seconds")
    @classmethod
    def non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator("period_seconds", "http_timeout_seconds")
    @classmethod
    def positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be > 0")
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = False


class CacheConfig(BaseSettings):
    """Root configuration. Single source of truth."""

    sweep: SweepConfig = Field(default_factory=SweepConfig)
    workers: WorkerConfig = Field(default_factory=WorkerConfig)
    watcher: WatcherConfig = Field(default_factory=WatcherConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"env_prefix": "CACHEKIT_", "env_nested_delimiter": "__"}

    @classmethod
    def from_yaml(cls, path: Path) -> CacheConfig:
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")

        raw = yaml.safe_load(path.read_text()) or {}
        if not isinstance(raw, dict):
            raise ConfigError(f"Config file must contain a mapping: {path}")
        return cls(**raw)
