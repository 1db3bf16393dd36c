"""
Shared configuration management for the repository cache layer.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="REPO_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Admin service
    service_name: str = Field(default="repository")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8020)


class RepositoryConfig(BaseConfig):
    """Cache, transaction and backend settings for the repository layer."""

    # Cache
    default_ttl_ms: int = Field(default=60_000, ge=0)
    redis_url: str = Field(default="redis://localhost:6379/0")
    cache_namespace: str = Field(default="repo:")

    # Transactions
    tx_max_attempts: int = Field(default=10, ge=1)
    tx_deadline_ms: int = Field(default=30_000, ge=0)
    tx_retry_base_delay: float = Field(default=0.0, ge=0.0)


@lru_cache(maxsize=1)
def get_config() -> RepositoryConfig:
    """Get the process-wide repository configuration."""
    return RepositoryConfig()


def reset_config() -> None:
    """Drop the cached configuration so the environment is read again."""
    get_config.cache_clear()
