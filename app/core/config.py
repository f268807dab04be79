"""Configuration management for Bingearr."""

from pydantic import PositiveInt
from functools import lru_cache
from typing import Literal
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # TMDB (only needed for id lookups)
    tmdb_api_key: str | None = None

    # Database holding the key-value slots
    database_url: str = "sqlite:///./bingearr.db"

    # Key-value substrate: "sql" (database_url), "memory" (process-local) or
    # "none" (no key-value slot at all)
    key_value_store: Literal["sql", "memory", "none"] = "sql"
    storage_namespace: str = "bingearr"

    # Storage keys are part of the persisted layout, keep them stable
    watch_later_key: str = "netflix-clone-watch-later"
    history_key: str = "netflix-watch-history"
    history_limit: PositiveInt = 100

    # Cookie backend
    cookie_max_bytes: PositiveInt = 4096
    cookie_max_age_days: PositiveInt = 365

    # App settings
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
