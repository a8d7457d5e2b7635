"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Storage: master.db plus one SQLite file per tenant under tenants/<id>/
    DATA_DIR: str = "./data"

    # Redis (tenant lookup cache, disabled when empty)
    REDIS_URL: str = ""
    TENANT_CACHE_TTL_SECONDS: int = 300

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # Session cookie
    SESSION_SECRET_KEY: str = "CHANGE-ME-IN-PRODUCTION-use-openssl-rand-hex-32"
    SESSION_COOKIE_NAME: str = "helpdesk_session"
    SESSION_MAX_AGE_SECONDS: int = 7 * 24 * 3600

    # Tenants
    TRIAL_DAYS: int = 7
    DEFAULT_LANGUAGE: str = "fr"

    # CORS
    CORS_ALLOWED_ORIGINS: str = "*"

    # LLM Providers
    LLM_PROVIDER: str = "anthropic"  # anthropic | openai | gemini
    ANTHROPIC_API_KEY: str = ""
    OPENAI_API_KEY: str = ""
    GEMINI_API_KEY: str = ""
    LLM_TIMEOUT: int = 30
    LLM_MAX_RETRIES: int = 2

    # URL scraping
    SCRAPER_TIMEOUT: int = 15
    SCRAPER_MAX_CHARS: int = 80000

    # Background jobs
    JOB_TTL_SECONDS: int = 600

    # Platform admin (soft activation/deactivation of tenants)
    SUPERADMIN_TOKEN: str = ""

    # Monitoring
    SENTRY_DSN: str = ""

    @property
    def data_path(self) -> Path:
        return Path(self.DATA_DIR)

    @property
    def tenants_dir(self) -> Path:
        return self.data_path / "tenants"

    @property
    def master_database_url(self) -> str:
        return f"sqlite+aiosqlite:///{self.data_path / 'master.db'}"


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
