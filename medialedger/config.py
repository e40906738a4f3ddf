"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_pool_size: int = 25
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    auto_migrate: bool = False

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Media Ledger API"
    api_version: str = "0.1.0"
    api_description: str = "Credit ledger, account lifecycle and media retention service"

    # Authentication - tokens are issued by the login service, we only verify them
    auth_jwt_secret: str = ""
    auth_jwt_algorithm: str = "HS256"

    # Administration - single superadmin identity (empty = any account with role=admin)
    superadmin_email: str = ""

    # Retention policy
    image_ttl_days: int = 14
    video_ttl_days: int = 14
    extension_days: int = 7
    max_image_extensions: int = 3
    max_video_extensions: int = 1

    # Ledger
    ledger_max_retries: int = 5

    # Sweep scheduler
    sweep_enabled: bool = True
    sweep_interval_seconds: int = 86400  # daily

    # Storage backend used to purge blobs
    storage_backend: Literal["filesystem", "http"] = "filesystem"
    storage_root: str = "./storage"
    storage_api_url: str = ""  # e.g. https://<project>.supabase.co/storage/v1/object/generated-images
    storage_api_token: str = ""
    storage_timeout_seconds: float = 10.0

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = True
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "media-ledger-api"
    environment: str = "production"  # deployment.environment on traces and logs

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

        if not self.auth_jwt_secret:
            errors.append("AUTH_JWT_SECRET is required but empty or missing")

        if self.storage_backend == "http" and not self.storage_api_url:
            errors.append("STORAGE_API_URL is required when STORAGE_BACKEND=http")

        if self.sweep_interval_seconds <= 0:
            errors.append("SWEEP_INTERVAL_SECONDS must be positive")

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


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
