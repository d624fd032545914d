"""
Configuration management for DoseRight
"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "DoseRight"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENV: str = "development"

    # API
    API_PREFIX: str = "/api"
    HOST: str = "0.0.0.0"
    PORT: int = 8080

    # Database
    DATABASE_URL: str = "sqlite:///./doseright.db"
    DATABASE_ECHO: bool = False

    # Security
    SECRET_KEY: str = "change-this-secret"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7  # 7 days

    # Shared secret presented by dispensers as "Authorization: Bearer <key>"
    DEVICE_API_KEY: Optional[str] = "change-device-secret"

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:5173"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


class DoseConfig:
    """Windows and thresholds for dose reconciliation and reporting"""

    # Lifecycle
    GRACE_WINDOW_MINUTES: int = 30   # pending/dispensed -> missed
    RETRY_WINDOW_MINUTES: int = 5    # dispensed -> pending
    UPCOMING_HORIZON_HOURS: int = 24

    # Refill alerts
    REFILL_THRESHOLD: int = 5
    REFILL_HIGH_SEVERITY: int = 2

    # Statistics
    STREAK_LOOKBACK_DAYS: int = 365
    RECENT_ACTIVITY_DAYS: int = 30
    RECENT_ACTIVITY_LIMIT: int = 50
    OVERVIEW_ADHERENCE_DAYS: int = 7
    OVERVIEW_ACTIVITY_LIMIT: int = 10
    OVERVIEW_SCHEDULE_LIMIT: int = 20
    CLINICAL_TASK_LIMIT: int = 6
    ON_TRACK_THRESHOLD: int = 85

    # Device defaults
    DEFAULT_SLOT_COUNT: int = 4
    DEFAULT_TIMEZONE: str = "UTC"


settings = get_settings()
dose_config = DoseConfig()
