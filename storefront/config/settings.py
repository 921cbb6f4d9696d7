"""Application settings using Pydantic for environment-based configuration."""
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Stripe Configuration
    stripe_secret_key: str = Field(..., description="Stripe secret API key (sk_test_...)")
    stripe_publishable_key: str = Field(..., description="Stripe publishable key (pk_test_...)")
    stripe_webhook_secret: str = Field(..., description="Stripe webhook signing secret")
    stripe_api_version: str = Field(default="2023-10-16", description="Stripe API version")
    stripe_currency: str = Field(default="cad", description="Checkout currency")
    stripe_allowed_countries: str = Field(
        default="US,CA", description="Shipping countries accepted at checkout (comma-separated)"
    )

    # Database Configuration
    database_url: str = Field(..., description="Database connection URL")
    database_pool_size: int = Field(default=20, description="Database connection pool size")
    database_max_overflow: int = Field(default=50, description="Max database connection overflow")
    database_echo: bool = Field(default=False, description="Echo SQL queries (debug)")

    # Redis Configuration
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")
    webhook_dedup_ttl: int = Field(
        default=86400 * 7, description="How long processed webhook ids are remembered (seconds)"
    )

    # Authentication
    jwt_secret: str = Field(..., description="Secret for access and verification tokens")
    refresh_token_secret: str = Field(..., description="Secret for refresh tokens")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(default=15, description="Access token lifetime")
    refresh_token_expire_days: int = Field(default=7, description="Refresh token lifetime")
    verification_token_expire_hours: int = Field(
        default=24, description="Email verification link lifetime"
    )
    password_reset_expire_minutes: int = Field(
        default=15, description="Password reset link lifetime"
    )

    # Email
    resend_api_key: str = Field(default="", description="Resend API key (emails skipped if empty)")
    email_sender: str = Field(
        default="Storefront <onboarding@resend.dev>", description="From address"
    )
    admin_email: str = Field(default="", description="Address notified of new orders")

    # Image storage
    cloudinary_cloud_name: str = Field(default="", description="Cloudinary cloud name")
    cloudinary_api_key: str = Field(default="", description="Cloudinary API key")
    cloudinary_api_secret: str = Field(default="", description="Cloudinary API secret")
    max_image_bytes: int = Field(default=5 * 1024 * 1024, description="Max upload size per image")
    max_product_images: int = Field(default=5, description="Max images per product upload")

    # Public URLs
    client_url: str = Field(default="http://localhost:5173", description="Storefront front end URL")
    api_base_url: str = Field(default="http://localhost:8000", description="Public URL of this API")

    # Application Configuration
    app_name: str = Field(default="storefront", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_workers: int = Field(default=4, description="Number of API workers")
    allowed_origins: str = Field(
        default="http://localhost:5173,http://localhost:8000",
        description="CORS allowed origins (comma-separated)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("stripe_secret_key")
    @classmethod
    def validate_stripe_key(cls, v: str) -> str:
        """Validate that Stripe secret key is a test or live key."""
        if not v.startswith("sk_test_") and not v.startswith("sk_live_"):
            raise ValueError(
                "Invalid Stripe secret key format. Must start with 'sk_test_' or 'sk_live_'"
            )
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("stripe_currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Stripe expects lower-case ISO currency codes."""
        if len(v) != 3:
            raise ValueError("Currency must be a 3-letter code")
        return v.lower()

    def get_allowed_origins_list(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    def get_allowed_countries_list(self) -> List[str]:
        """Parse checkout shipping countries from comma-separated string."""
        return [c.strip().upper() for c in self.stripe_allowed_countries.split(",") if c.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"

    @property
    def is_test_mode(self) -> bool:
        """Check if using Stripe test mode."""
        return self.stripe_secret_key.startswith("sk_test_")

    @property
    def email_enabled(self) -> bool:
        return bool(self.resend_api_key)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
