"""Configuration management using environment variables."""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = Field(
        default="sqlite:///data/rankdesk.db",
        alias="DATABASE_URL"
    )

    # Ranking data provider
    semrush_api_key: Optional[str] = Field(
        default=None,
        alias="SEMRUSH_API_KEY"
    )
    semrush_base_url: str = Field(
        default="https://api.semrush.com",
        alias="SEMRUSH_BASE_URL"
    )
    semrush_timeout_seconds: float = Field(
        default=30.0,
        alias="SEMRUSH_TIMEOUT_SECONDS"
    )

    # Alerts
    top_movers_limit: int = Field(
        default=10,
        alias="TOP_MOVERS_LIMIT"
    )
    significant_change_threshold: int = Field(
        default=10,
        alias="SIGNIFICANT_CHANGE_THRESHOLD"
    )

    # Batch reporting
    error_sample_limit: int = Field(
        default=10,
        alias="ERROR_SAMPLE_LIMIT"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL"
    )
    log_file: str = Field(
        default="logs/rankdesk.log",
        alias="LOG_FILE"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
