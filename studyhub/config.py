"""
Runtime configuration helpers for the StudyHub backend.

Loads DATABASE_URL and the realtime engine knobs from the environment, with
defaults taken from the .env file located in the project root.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root
BASE_DIR = Path(__file__).resolve().parents[1]

# Absolute path to .env
ENV_PATH = BASE_DIR / ".env"

# Load .env defaults without overriding environment variables provided by the platform
load_dotenv(dotenv_path=ENV_PATH, override=False)


class Settings(BaseSettings):
    database_url: str = Field(default="sqlite+pysqlite:///./studyhub.db", alias="DATABASE_URL")

    app_name: str = Field(default="StudyHub Backend", alias="APP_NAME")
    api_version: str = Field(default="0.1.0", alias="API_VERSION")
    public_base_url: str = Field(default="http://localhost:8000", alias="PUBLIC_BASE_URL")

    # Bearer tokens are issued by the external auth provider; only verification happens here
    jwt_secret_key: str | None = Field(default=None, alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    jwt_expires_minutes: int = Field(default=1440, alias="JWT_EXPIRES_MINUTES")

    # Comment threads
    orphan_policy: Literal["promote", "drop"] = Field(default="promote", alias="STUDYHUB_ORPHAN_POLICY")
    max_reply_depth: int = Field(default=3, alias="STUDYHUB_MAX_REPLY_DEPTH")

    # Notifications
    notification_page_size: int = Field(default=20, alias="STUDYHUB_NOTIFICATION_PAGE_SIZE")
    notification_retention_days: int = Field(default=30, alias="STUDYHUB_NOTIFICATION_RETENTION_DAYS")

    # Live channels
    live_queue_size: int = Field(default=256, alias="STUDYHUB_LIVE_QUEUE_SIZE")

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore"
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings"]
