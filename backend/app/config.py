"""Application configuration."""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://crm:crm123@db:5432/sales_crm"

    # Security
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    CORS_ORIGINS: List[str] = ["*"]

    # Email (SMTP). When EMAIL_USER is empty, codes are written to the log instead.
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    EMAIL_USER: Optional[str] = None
    EMAIL_APP_PASSWORD: Optional[str] = None
    EMAIL_FROM_NAME: str = "Paperfly CRM"
    VERIFICATION_CODE_TTL_MINUTES: int = 15

    # Bulk import
    IMPORT_MAX_ERRORS: int = 100

    # Notifications
    NOTIFICATION_POLL_SECONDS: int = 30

    # Scheduler
    ENABLE_SCHEDULER: bool = True
    TARGET_REMINDER_SCHEDULE: str = "0 9 * * *"  # every day at 09:00
    TARGET_REMINDER_DAYS: int = 3

    # Bootstrap super admin, created on startup when missing
    BOOTSTRAP_ADMIN_EMAIL: Optional[str] = None
    BOOTSTRAP_ADMIN_PASSWORD: Optional[str] = None
    BOOTSTRAP_ADMIN_NAME: str = "Administrator"

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
