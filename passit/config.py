"""
Configuration and settings for the PassIt data layer.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the data layer."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Local cache (any SQLAlchemy URL; SQLite on device)
    cache_url: str = Field(
        default="sqlite:///passit_cache.db", validation_alias="PASSIT_CACHE_URL"
    )

    # Firebase
    firebase_credentials: Optional[str] = Field(
        default=None, validation_alias="FIREBASE_CREDENTIALS"
    )
    firebase_project_id: Optional[str] = Field(
        default=None, validation_alias="FIREBASE_PROJECT_ID"
    )
    firebase_storage_bucket: Optional[str] = Field(
        default=None, validation_alias="FIREBASE_STORAGE_BUCKET"
    )
    firebase_web_api_key: Optional[str] = Field(
        default=None, validation_alias="FIREBASE_WEB_API_KEY"
    )

    # Exchange rates
    exchange_rate_base_url: str = Field(
        default="https://open.er-api.com/v6/latest",
        validation_alias="EXCHANGE_RATE_BASE_URL",
    )
    exchange_rate_timeout_seconds: float = Field(
        default=10.0, validation_alias="EXCHANGE_RATE_TIMEOUT_SECONDS"
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="PASSIT_USE_IN_MEMORY_BACKENDS"
    )

    # Background cache refreshes
    sync_workers: int = Field(default=4, validation_alias="PASSIT_SYNC_WORKERS")

    @property
    def firebase_configured(self) -> bool:
        return bool(self.firebase_project_id or self.firebase_credentials)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
