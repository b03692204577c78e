"""
Shared configuration management for querycache.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_STALE_MS = 1000 * 60 * 5


class QueryCacheSettings(BaseSettings):
    """Settings for a query cache host process."""

    model_config = SettingsConfigDict(
        env_prefix="QUERYCACHE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Cache
    default_stale_ms: float = Field(default=DEFAULT_STALE_MS, ge=0)
    enable_metrics: bool = Field(default=False)

    # HTTP compute adapter
    http_timeout_seconds: float = Field(default=10.0, gt=0)


def get_settings(**overrides) -> QueryCacheSettings:
    """Build settings from the environment, applying explicit overrides."""
    return QueryCacheSettings(**overrides)
