"""
Configuration management for DoseSentinel
"""

from typing import Optional
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "DoseSentinel"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENV: str = "development"

    # API
    API_PREFIX: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str = "sqlite:///./dose_sentinel.db"
    DATABASE_ECHO: bool = False
    DATABASE_LOCK_TIMEOUT_SECONDS: float = 5.0
    # Server-side statement/lock timeout; defaults to the tighter of the recorder and sweep limits
    DATABASE_STATEMENT_TIMEOUT_SECONDS: Optional[float] = None

    # Time zones
    DEFAULT_TIMEZONE: str = "UTC"

    # Adherence windows (global defaults, not per medication)
    GRACE_WINDOW_MINUTES: int = 120
    LATE_THRESHOLD_MINUTES: int = 30
    DUPLICATE_WINDOW_MINUTES: int = 10
    LOW_STOCK_THRESHOLD: int = 5

    # Analytics
    RELIABILITY_MAX_DAYS: int = 90
    ANALYTICS_WINDOW_DAYS: int = 30
    RUNWAY_CRITICAL_DAYS: int = 3
    RUNWAY_LOW_DAYS: int = 7

    # Recorder / sweeper bounds
    RECORDER_TIMEOUT_SECONDS: float = 5.0
    SWEEP_ENABLED: bool = True
    SWEEP_INTERVAL_SECONDS: int = 3600
    SWEEP_MEDICATION_BUDGET_SECONDS: float = 10.0

    # Notifications
    NOTIFICATION_QUEUE_MAXLEN: int = 10000

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Database table names
class TableNames:
    USERS = "users"
    MEDICATIONS = "medications"
    DOSE_LOGS = "dose_logs"
    AUDIT_EVENTS = "audit_events"
    GUARDIAN_LINKS = "guardian_links"


settings = get_settings()
