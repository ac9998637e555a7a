"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="IPTV Self-Hosted", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=6386, alias="PORT")
    public_url: HttpUrl | None = Field(default=None, alias="PUBLIC_URL")

    config_secret: str | None = Field(default=None, alias="CONFIG_SECRET")

    cache_enabled: bool = Field(default=True, alias="CACHE_ENABLED")
    interface_cache_ttl_ms: int = Field(
        default=6 * 3600 * 1000, alias="CACHE_TTL_MS", ge=0
    )
    max_cache_entries: int = Field(default=50, alias="MAX_CACHE_ENTRIES", ge=1)
    provider_cache_ttl_seconds: int = Field(
        default=1_800, alias="PROVIDER_CACHE_TTL", ge=0
    )
    provider_cache_max_entries: int = Field(
        default=100, alias="PROVIDER_CACHE_MAX_ENTRIES", ge=1
    )

    probe_timeout: float = Field(default=5.0, alias="PROBE_TIMEOUT", gt=0)
    bulk_timeout: float = Field(default=15.0, alias="BULK_TIMEOUT", gt=0)
    category_timeout: float = Field(default=10.0, alias="CATEGORY_TIMEOUT", gt=0)
    series_info_timeout: float = Field(
        default=10.0, alias="SERIES_INFO_TIMEOUT", gt=0
    )
    playlist_timeout: float = Field(default=15.0, alias="PLAYLIST_TIMEOUT", gt=0)

    retry_attempts: int = Field(default=3, alias="RETRY_ATTEMPTS", ge=1, le=10)
    retry_backoff_seconds: float = Field(default=1.0, alias="RETRY_BACKOFF", ge=0)

    catalog_page_size: int = Field(
        default=100, alias="CATALOG_PAGE_SIZE", ge=1, le=500
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("config_secret", mode="before")
    @classmethod
    def _strip_blank_secret(cls, value: object) -> object:
        """Treat an empty ``CONFIG_SECRET`` as unset."""

        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper() or "INFO"
        return value

    @property
    def interface_cache_ttl_seconds(self) -> float:
        """Interface cache TTL expressed in seconds."""

        return self.interface_cache_ttl_ms / 1000

    @property
    def encryption_enabled(self) -> bool:
        return self.config_secret is not None

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
