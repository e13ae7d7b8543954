from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./consultbook.db"

    # Bearer token verification
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    # Application
    APP_ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Scheduling
    DEFAULT_DURATION_MINUTES: int = 90
    MAX_DURATION_MINUTES: int = 480
    EXPIRY_GRACE_MINUTES: int = 15
    EXPIRY_SWEEP_EVERY_MINUTES: int = 5
    REMINDER_LEAD_MINUTES: int = 15
    REMINDER_EVERY_MINUTES: int = 5

    # Background worker queue
    REDIS_URL: str = "redis://localhost:6379/0"

    # Listing
    LIST_DEFAULT_LIMIT: int = 10
    LIST_MAX_LIMIT: int = 100
    ADMIN_LIST_DEFAULT_LIMIT: int = 50
    ADMIN_LIST_MAX_LIMIT: int = 500

    # Email Configuration
    EMAIL_NOTIFICATIONS_ENABLED: bool = True
    SMTP_SERVER: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    EMAIL_FROM: Optional[str] = None
    EMAIL_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    SMTP_TIMEOUT_SECONDS: int = 8

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )


settings = Settings()
