"""Application configuration with Pydantic Settings.

Settings are loaded from environment variables and .env files.

Examples:
    >>> from app.config import get_settings
    >>> get_settings().CREDITS_PER_PURCHASE
    5

Tests:
    - tests/unit/test_config.py::TestSettings
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Application settings.

    Attributes:
        DATABASE_URL: Database connection string (SQLite or PostgreSQL)
        SESSION_SECRET_KEY: HMAC key for signed session tokens
        STRIPE_SECRET_KEY: Stripe API key; premium verification is disabled without it
        STRIPE_WEBHOOK_SECRET: Signing secret for the Stripe webhook endpoint
        CREDITS_PER_PURCHASE: Premium generations awarded per paid checkout
        PAYMENT_VERIFY_TIMEOUT: Upper bound (seconds) on inline payment verification
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./credits.db",
        description="Database connection string",
    )

    # Sessions
    SESSION_SECRET_KEY: str = Field(
        default="dev-secret",
        description="Secret used to sign session tokens",
    )
    SESSION_TOKEN_EXPIRE_MINUTES: int = Field(
        default=60 * 24 * 7,
        description="Session token lifetime in minutes",
        ge=1,
    )

    # Payments
    STRIPE_SECRET_KEY: str | None = Field(
        default=None,
        description="Stripe secret API key",
    )
    STRIPE_WEBHOOK_SECRET: str | None = Field(
        default=None,
        description="Stripe webhook signing secret",
    )
    CREDITS_PER_PURCHASE: int = Field(
        default=5,
        description="Premium credits awarded per paid checkout session",
        ge=1,
    )
    PAYMENT_VERIFY_TIMEOUT: float = Field(
        default=10.0,
        description="Timeout in seconds for inline payment verification",
        gt=0,
    )

    # Pipeline
    PIPELINE_FACTORY: str | None = Field(
        default=None,
        description="'module:callable' returning the generation pipeline",
    )

    # Application Settings
    ENVIRONMENT: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )
    DEBUG: bool = Field(
        default=True,
        description="Enable debug mode",
    )
    CORS_ORIGINS: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173"],
        description="Allowed CORS origins outside debug mode",
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL format."""
        valid_prefixes = ("sqlite", "postgresql", "postgres")
        if not any(v.startswith(prefix) for prefix in valid_prefixes):
            raise ValueError(
                f"DATABASE_URL must start with one of: {valid_prefixes}"
            )
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT == Environment.PRODUCTION

    @property
    def is_sqlite(self) -> bool:
        """Check if using SQLite database."""
        return self.DATABASE_URL.startswith("sqlite")

    @property
    def payments_enabled(self) -> bool:
        """Check if inline payment verification can run."""
        return bool(self.STRIPE_SECRET_KEY)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: The application settings.
    """
    return Settings()
