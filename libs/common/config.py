from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production"] = "local"
    LOG_LEVEL: str = "INFO"
    SITE_URL: str = "http://localhost:3000"
    TIMEZONE: str = "Europe/London"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./fuelflow.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Supabase
    # Default placeholder values keep local/test runs from failing when Supabase
    # credentials are not required. Real deployments should override via env.
    SUPABASE_URL: str = "http://localhost"
    SUPABASE_ANON_KEY: str = "test-anon-key"
    SUPABASE_SERVICE_ROLE_KEY: str = "test-service-role-key"
    SUPABASE_JWT_SECRET: str = "test-jwt-secret"

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_API_BASE: str = "https://api.stripe.com"
    # Comma separated so a rotated secret can be verified alongside the old one
    STRIPE_WEBHOOK_SECRETS: str = ""
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300
    DEFAULT_CURRENCY: str = "gbp"

    # Invoices
    INVOICE_SERVICE_URL: str = "http://localhost:3000"
    INVOICE_SECRET: str = ""
    INVOICE_TIMEOUT_SECONDS: float = 30.0

    # Access control
    ACCESS_FAIL_OPEN: bool = False
    # Sign-ups older than this are left out of the pending approvals list; 0 disables the cutoff
    APPROVALS_LOOKBACK_DAYS: int = 365

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
        return v

    @property
    def stripe_webhook_secrets(self) -> list[str]:
        return [s.strip() for s in self.STRIPE_WEBHOOK_SECRETS.split(",") if s.strip()]


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
