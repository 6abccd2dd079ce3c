"""
Lunaxcode - Configuration and settings.

Values come from the environment or a local .env file. Supabase is optional:
without it the onboarding service keeps submissions in memory.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Supabase
    supabase_url: str | None = None
    supabase_service_role_key: str | None = None

    # Onboarding
    onboarding_storage: Literal["memory", "supabase"] = "memory"
    persistence_timeout_seconds: float = 10.0

    # External pricing/add-on catalog (CMS API)
    catalog_api_base_url: str = "http://localhost:8787/api/v1"
    catalog_timeout_seconds: float = 5.0

    # Comma-separated origins allowed by CORS
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


class _SettingsProxy:
    """Lazy proxy for settings to avoid loading .env at import time."""

    _instance: Settings | None = None

    def __getattr__(self, name: str):
        if self._instance is None:
            self._instance = get_settings()
        return getattr(self._instance, name)


settings = _SettingsProxy()
