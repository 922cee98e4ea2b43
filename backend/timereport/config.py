from __future__ import annotations

import os
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)
    """Application runtime configuration."""

    app_name: str = "TimeReport"
    environment: str = "development"
    host: str = os.getenv("TR_HOST", "127.0.0.1")
    port: int = int(os.getenv("TR_PORT", "8080"))

    storage_backend: str = os.getenv("TR_STORAGE", "sqlite")
    sqlite_path: Path = Path(os.getenv("TR_SQLITE_PATH", "./data/timereport.db"))

    token_secret: str = os.getenv("TR_TOKEN_SECRET", "change-me")
    acl_claim: str = os.getenv("TR_ACL_CLAIM", "acl")

    log_level: str = os.getenv("TR_LOG_LEVEL", "INFO")

    default_page_size: int = int(os.getenv("TR_DEFAULT_PAGE_SIZE", "50"))
    max_page_size: int = int(os.getenv("TR_MAX_PAGE_SIZE", "200"))

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return str(value).strip().upper() or "INFO"


settings = Settings()

# Ensure essential directories exist
settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
