"""Application configuration — loaded from environment variables."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_MIB = 1024 * 1024


class Settings(BaseSettings):
    """Central configuration loaded from env vars (or ``.env`` file)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    allowed_domains: str = "github.com,gitlab.com,bitbucket.org"
    max_file_size_bytes: int = Field(default=1 * _MIB, gt=0)
    max_repo_size_bytes: int = Field(default=100 * _MIB, gt=0)
    cache_ttl_seconds: int = Field(default=24 * 60 * 60, ge=0)
    cache_max_entries: int = Field(default=100, gt=0)
    redis_url: str | None = None
    fs_concurrency: int = Field(default=50, gt=0)
    fs_retry_attempts: int = Field(default=5, gt=0)
    fs_retry_base_delay: float = Field(default=0.05, ge=0)
    fetch_timeout_seconds: float = Field(default=120.0, gt=0)
    rate_limit_requests: int = Field(default=10, ge=0)
    rate_limit_window_seconds: float = Field(default=60.0, gt=0)
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    @property
    def allowed_hosts(self) -> list[str]:
        """``ALLOWED_DOMAINS`` split on commas, trimmed and lower-cased."""
        return [d.strip().lower() for d in self.allowed_domains.split(",") if d.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton application settings (cached after first call)."""
    return Settings()
