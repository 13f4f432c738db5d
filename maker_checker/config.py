"""
Application configuration.

All configuration is loaded from environment variables.
Never hardcode secrets or connection strings in code.
"""

import os
from functools import lru_cache

from dotenv import load_dotenv

# Load .env file into environment variables
load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_int_list(name: str, default: str) -> tuple[int, ...]:
    raw = os.getenv(name, default)
    return tuple(int(part) for part in raw.split(",") if part.strip())


class Settings:
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Maker-Checker Control Service"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = _env_bool("DEBUG")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "postgresql://localhost:5432/maker_checker"
    )

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Used to key the HMAC digests of one-time codes
    SECRET_KEY: str = os.getenv("SECRET_KEY", "dev-secret-key-change-in-production")

    # Risk screening
    RISK_FLAG_THRESHOLD: int = int(os.getenv("RISK_FLAG_THRESHOLD", "40"))
    DUPLICATE_WINDOW_HOURS: int = int(os.getenv("DUPLICATE_WINDOW_HOURS", "24"))
    BUSINESS_START_HOUR: int = int(os.getenv("BUSINESS_START_HOUR", "9"))
    BUSINESS_END_HOUR: int = int(os.getenv("BUSINESS_END_HOUR", "18"))
    # Python weekday numbers, Monday is 0
    BUSINESS_DAYS: tuple[int, ...] = _env_int_list("BUSINESS_DAYS", "0,1,2,3,4")
    BUSINESS_TIMEZONE: str = os.getenv("BUSINESS_TIMEZONE", "UTC")

    # Maker and checker may be the same identity unless this is switched on
    ENFORCE_SEGREGATION_OF_DUTIES: bool = _env_bool("ENFORCE_SEGREGATION_OF_DUTIES")

    # One-time passcodes
    OTP_TTL_SECONDS: int = int(os.getenv("OTP_TTL_SECONDS", "300"))
    OTP_MAX_ATTEMPTS: int = int(os.getenv("OTP_MAX_ATTEMPTS", "3"))
    PASSWORD_MIN_LENGTH: int = int(os.getenv("PASSWORD_MIN_LENGTH", "6"))

    # Outbound mail
    MAIL_BACKEND: str = os.getenv("MAIL_BACKEND", "console")
    MAIL_FROM: str = os.getenv(
        "MAIL_FROM", "SecureControl <noreply@securecontrol.dev>"
    )
    SMTP_HOST: str = os.getenv("SMTP_HOST", "localhost")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME: str | None = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD: str | None = os.getenv("SMTP_PASSWORD")
    SMTP_USE_TLS: bool = _env_bool("SMTP_USE_TLS", "true")
    LOGIN_URL: str = os.getenv("LOGIN_URL", "http://localhost:3000/auth/login")


@lru_cache()
def get_settings() -> Settings:
    """
    Return cached settings instance.

    Using lru_cache means the Settings object is created once
    and reused for all subsequent calls. This avoids reading
    environment variables repeatedly.
    """
    return Settings()
