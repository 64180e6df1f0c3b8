"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. Both transports (the FastAPI server and the serverless handler)
read the same Settings, so a deployment configures them identically.

Pydantic Settings automatically:
  1. Reads from environment variables (highest priority)
  2. Falls back to .env file values
  3. Uses defaults defined here (lowest priority)

Usage:
    from authgate.config import settings
    print(settings.DATABASE_URL)

The three values this service consumes from its deployment are the signing
secret (SECRET_KEY), the store location (DATABASE_URL) and the administrator
allow-list (ADMIN_EMAILS).
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Development-only signing secret. Never valid when ENVIRONMENT=production.
DEV_SECRET_KEY = "authgate-development-secret-do-not-deploy"


class Settings(BaseSettings):
    """
    Central configuration for the auth service.

    SECRET_KEY has a development fallback so the service starts out of the
    box; the validator below refuses that fallback in production.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "authgate"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # --- Database ---
    # SQLite by default; any async SQLAlchemy URL works (e.g. postgresql+asyncpg://...)
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/auth.db"

    # --- Tokens ---
    SECRET_KEY: str = DEV_SECRET_KEY
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_HOURS: int = 24

    # --- Authorization ---
    # Exact addresses that become administrators when their account is created
    # or at startup. Set as JSON in the environment: ADMIN_EMAILS='["a@x.com"]'
    ADMIN_EMAILS: list[str] = []
    # If set, bootstrap creates an account for every allow-listed address that has none
    ADMIN_SEED_PASSWORD: str | None = None
    ADMIN_SEED_NAME: str = "Administrator"

    # --- Passwords ---
    PASSWORD_MIN_LENGTH: int = 6
    # bcrypt only looks at the first 72 bytes of input
    PASSWORD_MAX_LENGTH: int = 72

    # --- Rate limiting (persistent server only) ---
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT: str = "100 per 15 minutes"
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    # --- Audit event listing ---
    SERVER_EVENTS_LIMIT: int = 100
    SERVERLESS_EVENTS_LIMIT: int = 50

    # --- CORS ---
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]

    @model_validator(mode="after")
    def _reject_dev_secret_in_production(self) -> "Settings":
        if self.is_production and self.SECRET_KEY == DEV_SECRET_KEY:
            raise ValueError(
                "SECRET_KEY must be set explicitly when ENVIRONMENT=production"
            )
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def uses_dev_secret(self) -> bool:
        return self.SECRET_KEY == DEV_SECRET_KEY


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
