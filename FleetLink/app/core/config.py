"""
Configuration for the FleetLink backend.

Settings are loaded from environment variables or a `.env` file next to
the project root. Defaults are suitable for local development against
SQLite.
"""

from __future__ import annotations

from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(ENV_PATH, override=False)


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    APP_NAME: str = Field(default="FleetLink")
    APP_ENV: str = Field(default="dev")
    DATABASE_URL: str = Field(default="sqlite:///./fleetlink.db")
    AUTO_CREATE_DB: bool = Field(default=True)
    LOG_LEVEL: str = Field(default="INFO")
    CORS_ORIGINS: List[str] = Field(default_factory=lambda: ["*"])

    # Pool settings are ignored for SQLite
    DB_POOL_SIZE: int = Field(default=5)
    DB_MAX_OVERFLOW: int = Field(default=10)
    DB_POOL_RECYCLE_SEC: int = Field(default=1800)

    # Booking rules
    CANCELLATION_WINDOW_HOURS: float = Field(default=2.0, gt=0)
    REGISTRATION_PREFIX: str = Field(default="FL")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def is_prod(self) -> bool:
        return self.APP_ENV.strip().lower() == "prod"


settings = Settings()
