"""Application settings loaded from environment or .env."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    catalog_path: str | None = None
    default_activity_id: str = "no-activity"
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000

    model_config = SettingsConfigDict(env_file=".env", env_prefix="DIVE_", extra="ignore")


@lru_cache(maxsize=None)
def get_settings() -> AppSettings:
    return AppSettings()
