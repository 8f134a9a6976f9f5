"""Application configuration.

Defines `Settings` read from environment variables and the `.env` file.
`DATABASE_URL` picks the storage engine: a plain `sqlite:///<path>` URL
selects the embedded in-memory engine with a snapshot file at `<path>`,
anything else (`postgresql://...`, `sqlite+aiosqlite:///...`) goes through
the pooled async engine.
"""
# app/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "Canvass"
    DEBUG: bool = False
    LOG_PATH: str = "logging"
    LOG_LEVEL: str = "INFO"

    SECRET_KEY: str = "change-me-in-env"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7  # 7 days

    DATABASE_URL: str = "sqlite:///./data/questionnaire.db"
    DB_POOL_SIZE: int = 10
    DB_POOL_TIMEOUT: float = 10.0
    DB_STATEMENT_TIMEOUT_MS: int = 15000

    ADMIN_EMAIL: str = "admin@example.com"
    ADMIN_ALIAS: str = "admin"
    ADMIN_PASSWORD: str | None = None
    ADMIN_PASSWORD_FILE: str = "data/admin_password.txt"

    UPLOAD_DIR: str = "uploads"
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    DEFAULT_LANGUAGE: str = "zh"
    GUEST_RECENT_LIMIT: int = 4

    BACKEND_CORS_ORIGINS: str = "*"


settings = Settings()
