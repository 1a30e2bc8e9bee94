"""
Configuration management for CareWatch
"""

from datetime import timedelta
from typing import Optional
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "CareWatch"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENV: str = "development"

    # API
    API_PREFIX: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str = "sqlite:///./carewatch.db"
    DATABASE_ECHO: bool = False

    # Schedule processing
    SCHEDULE_TIMEZONE: str = "UTC"
    TICK_INTERVAL_SECONDS: float = 1.0
    MISSED_SWEEP_DAYS: int = 2
    COORDINATOR_MAX_WORKERS: int = 4
    COORDINATOR_AUTOSTART: bool = True

    # Outbound email (simulated when SMTP_HOST is unset)
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    ALERT_SENDER_EMAIL: str = "alerts@carewatch.local"

    # Notifications
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_PHONE_NUMBER: Optional[str] = None

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


class ScheduleConfig:
    """Fixed rules of the dose state machine"""

    SNOOZE_WINDOW: timedelta = timedelta(minutes=30)

    DATE_KEY_FORMAT: str = "%Y-%m-%d"
    TIME_FORMATS: tuple = ("%H:%M", "%H:%M:%S")
    GROUP_LABEL_FORMAT: str = "%Y-%m-%d %H:%M"

    NOTIFICATION_TYPE_MISSED_DOSE: str = "missedDose"
    NOTIFICATION_TYPE_HELP_REQUEST: str = "helpRequest"


settings = get_settings()
schedule_config = ScheduleConfig()
