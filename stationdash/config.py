"""
Application configuration using Pydantic settings.

This module contains all configuration settings for the dashboard backend,
loaded from environment variables with sensible defaults.
"""

import os
from typing import List, Optional, Union

from pydantic import field_validator, ValidationInfo, ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden with environment variables.
    """

    # Server Configuration
    SERVER_NAME: str = "Weather Station Dashboard"
    DEBUG: bool = False
    API_PREFIX: str = "/api"

    # CORS Configuration
    # Note: Using Union[str, List] to avoid pydantic-settings 2.6+ JSON parsing issues
    BACKEND_CORS_ORIGINS: Union[str, List[str]] = "http://localhost:3000,http://localhost:5173"

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(
        cls, v: Union[str, List[str]]
    ) -> List[str]:
        """Parse CORS origins from a comma-separated string or a list."""
        return _split_csv(v, "CORS origins")

    # Rate Limiting
    RATE_LIMIT_REQUESTS: int = 100
    RATE_LIMIT_WINDOW: int = 60  # seconds

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_MAX_BYTES: int = 10 * 1024 * 1024
    LOG_BACKUP_COUNT: int = 5

    # Raw exports and derived stores
    RAW_DATA_DIR: str = "DNT"
    DATA_STORE_DIR: str = "data"
    MAIN_FILE_SUFFIX: str = "A"
    ALLSENSORS_FILE_SUFFIX: str = "Allsensors_A"

    # Columnar store
    DUCKDB_PATH: str = ":memory:"
    DUCKDB_THREADS: int = 4

    # Statistics cache
    STATISTICS_MAX_AGE_SECONDS: int = 24 * 60 * 60
    STATISTICS_REFRESH_SECONDS: int = 24 * 60 * 60

    # Database Configuration (forecast tables)
    SQLALCHEMY_DATABASE_URI: Optional[str] = None

    @field_validator("SQLALCHEMY_DATABASE_URI", mode="before")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str], info: ValidationInfo) -> str:
        """Assemble the async database connection string."""
        if isinstance(v, str) and v:
            return v

        # DATABASE_URL (Render/Railway/Heroku style)
        database_url = os.getenv("DATABASE_URL")
        if database_url:
            if database_url.startswith("postgres://"):
                database_url = database_url.replace("postgres://", "postgresql+asyncpg://", 1)
            elif database_url.startswith("postgresql://"):
                database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
            return database_url

        store_dir = info.data.get("DATA_STORE_DIR") or "data"
        return f"sqlite+aiosqlite:///{store_dir}/forecasts.db"

    # Forecast storage & analysis
    FORECAST_STATION_ID: str = "11035"
    FORECAST_STATION_IDS: Union[str, List[str]] = ""
    FORECAST_CHECK_INTERVAL_SECONDS: int = 15 * 60
    FORECAST_RUN_HOUR: int = 0
    FORECAST_TIMEZONE: str = "Europe/Vienna"
    FORECAST_DAYS: int = 7
    FORECAST_SOURCE_DELAY_SECONDS: float = 2.0
    FORECAST_HTTP_TIMEOUT_SECONDS: float = 20.0
    FORECAST_MAX_RETRIES: int = 3
    FORECAST_RETRY_DELAY_SECONDS: float = 30.0
    ANALYSIS_ACTUAL_TIMEOUT_SECONDS: float = 10.0

    @field_validator("FORECAST_STATION_IDS", mode="before")
    @classmethod
    def assemble_station_ids(
        cls, v: Union[str, List[str]]
    ) -> List[str]:
        """Parse extra forecast station ids from a comma-separated string."""
        return _split_csv(v, "forecast station ids")

    # Forecast provider API keys (missing key => provider skipped)
    OPENWEATHER_API_KEY: Optional[str] = None
    METEOBLUE_API_KEY: Optional[str] = None

    # Ecowitt device API (realtime archiver)
    ECOWITT_SERVER: str = "api.ecowitt.net"
    ECOWITT_APPLICATION_KEY: Optional[str] = None
    ECOWITT_API_KEY: Optional[str] = None
    ECOWITT_MAC: Optional[str] = None
    RT_REFRESH_SECONDS: int = 300
    RT_ARCHIVE_TO_CSV: bool = True

    @field_validator("RT_REFRESH_SECONDS")
    @classmethod
    def clamp_rt_refresh(cls, v: int) -> int:
        """Realtime polling never runs more often than every 10 seconds."""
        return max(10, v)

    # Background jobs
    SCHEDULER_ENABLED: bool = True

    model_config = ConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def forecast_station_ids(self) -> List[str]:
        """Stations handled by the daily forecast job."""
        return list(self.FORECAST_STATION_IDS) or [self.FORECAST_STATION_ID]

    @property
    def ecowitt_configured(self) -> bool:
        """True when all Ecowitt credentials are present."""
        return bool(self.ECOWITT_APPLICATION_KEY and self.ECOWITT_API_KEY and self.ECOWITT_MAC)


def _split_csv(v: Union[str, List[str], None], label: str) -> List[str]:
    if v is None or v == "":
        return []
    if isinstance(v, str):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list):
        return v
    raise ValueError(f"Invalid {label} format: {v}")


# Create global settings instance
settings = Settings()
