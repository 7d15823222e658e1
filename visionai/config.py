"""
Application Configuration - Pydantic Settings for type-safe config.

FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_pool_size: int = 10
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "VisionAI API"
    api_version: str = "0.1.0"
    api_description: str = "Accounts, credits and credit purchases for VisionAI"
    # Proxies trusted to set X-Forwarded-For (uvicorn proxy headers)
    forwarded_allow_ips: str = "127.0.0.1"

    # Authentication
    jwt_secret: str = ""  # generate with: openssl rand -hex 32
    jwt_expire_hours: int = 168  # 7 days

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability
    metrics_enabled: bool = True
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "visionai-api"

    # Payment Provider - Stripe
    stripe_api_key: str = ""  # sk_test_... or sk_live_...
    stripe_webhook_secret: str = ""  # whsec_...
    stripe_publishable_key: str = ""  # pk_test_... or pk_live_...
    gateway_timeout_seconds: float = 10.0

    # Credits
    currency: str = "USD"
    signup_credits: int = 20
    unlimited_credits_ceiling: int = 999999

    # Rate limiting for auth endpoints
    login_max_attempts: int = 5
    login_window_seconds: int = 15 * 60
    register_max_attempts: int = 3
    register_window_seconds: int = 60 * 60
    rate_limit_cleanup_after_seconds: int = 30 * 60
    rate_limit_sweep_interval_seconds: int = 30 * 60

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if len(self.jwt_secret) < 32:
            errors.append("JWT_SECRET is required and must be at least 32 characters")

        if self.unlimited_credits_ceiling <= 0:
            errors.append("UNLIMITED_CREDITS_CEILING must be positive")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def stripe_configured(self) -> bool:
        """Stripe needs both the secret key and the webhook secret."""
        return bool(self.stripe_api_key and self.stripe_webhook_secret)


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
