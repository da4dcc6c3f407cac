#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

Type-safe, environment-based configuration for the cache access layer.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Easy testing with override mechanisms

Topology-level validation (endpoint list alignment, pool invariants) lives in
the pool factory, which raises ConfigurationError before any pool is built.

Author: System Architect
Date: 2026-10-19
"""

from typing import Literal, TypeVar

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class RedisSettings(BaseSettings):
    """
    Cache endpoint configuration.

    STAGE-0.1: Endpoint configuration

    REDIS_HOST / REDIS_PORT / REDIS_PASSWORD hold a single value for the
    single topology and comma-separated lists for arbiter and sharded.
    """

    REDIS_TOPOLOGY: str = Field(default="single", description="single, arbiter or sharded")
    REDIS_HOST: str = Field(default="localhost", description="Host or comma-separated hosts")
    REDIS_PORT: str = Field(default="6379", description="Port or comma-separated ports")
    REDIS_PASSWORD: str = Field(default="", description="Credential(s); empty means none")
    REDIS_TIMEOUT_MS: int = Field(default=2000, description="Per-command socket timeout (ms)")
    REDIS_DECODE_RESPONSES: bool = Field(default=True, description="Return str instead of bytes")

    REDIS_ARBITER_MASTER_NAME: str = Field(default="mymaster", description="Monitored replica set")
    REDIS_ARBITER_DISCOVERY_TIMEOUT_MS: int = Field(default=5000, description="Primary discovery window")

    REDIS_SHARD_VIRTUAL_NODES: int = Field(default=160, description="Virtual nodes per shard")
    REDIS_SHARD_MULTIKEY_POLICY: Literal["strict", "merge"] = Field(
        default="strict", description="Cross-shard MGET/DEL policy"
    )
    REDIS_SHARD_HASH_TAGS: bool = Field(default=False, description="Hash only {tag} key parts")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class PoolSettings(BaseSettings):
    """
    Connection pool sizing and blocking policy (applied per endpoint).

    STAGE-0.2: Pool configuration
    """

    REDIS_POOL_MAX_TOTAL: int = Field(default=8, description="Hard cap on open connections")
    REDIS_POOL_MAX_IDLE: int = Field(default=8, description="Connections kept warm")
    REDIS_POOL_MIN_IDLE: int = Field(default=0, description="Connections pre-warmed")
    REDIS_POOL_MAX_WAIT_MILLIS: int = Field(default=3000, description="Borrow wait when saturated")
    REDIS_POOL_BLOCK_WHEN_EXHAUSTED: bool = Field(default=True, description="Wait instead of failing")
    REDIS_POOL_SHUTDOWN_TIMEOUT_MS: int = Field(default=5000, description="close() drain deadline")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {list(LOG_LEVELS)}")
        return level

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """General application settings."""

    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Redis Pool Facade", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


_Section = TypeVar("_Section", bound=BaseSettings)


class Settings(RedisSettings, PoolSettings, LoggingSettings, ApplicationSettings):
    """
    Every configuration section in one environment-loaded object.

    STAGE-0: Centralized configuration initialization

    Fields are flat (they map one-to-one onto environment variables); the
    `redis`, `pool`, `logging` and `app` properties return views
    of a single section for the component that owns it.

    Usage:
        from redis_facade.core.config import get_settings

        settings = get_settings()
        topology = settings.redis.REDIS_TOPOLOGY
        max_total = settings.pool.REDIS_POOL_MAX_TOTAL
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    def _section(self, section: type[_Section]) -> _Section:
        # Already validated here; re-reading the environment would drop overrides
        return section.model_construct(**self.model_dump(include=set(section.model_fields)))

    @property
    def redis(self) -> RedisSettings:
        return self._section(RedisSettings)

    @property
    def pool(self) -> PoolSettings:
        return self._section(PoolSettings)

    @property
    def logging(self) -> LoggingSettings:
        return self._section(LoggingSettings)

    @property
    def app(self) -> ApplicationSettings:
        return self._section(ApplicationSettings)


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.3: Settings initialization
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """Re-read the environment into a fresh global instance."""
    global _settings
    _settings = Settings()
    return _settings
