"""Application configuration using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="IDENTITY_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    service_name: str = "identity-sync"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_json: bool = False

    # Audit
    audit_enabled: bool = True

    # Last reconciled state, holds generated secret values
    state_file: Path = Field(default=Path(".identity-sync.state.yaml"))


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """Alias for the module-level settings singleton."""
    return settings
