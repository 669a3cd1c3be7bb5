"""
Configuration module for the portal.

This module provides centralized configuration management using Pydantic settings.
All configuration values can be overridden via environment variables or .env file.
"""

from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings for the portal.

    All settings can be configured via environment variables.
    Settings are validated on instantiation to ensure correct configuration.

    Attributes:
        API_BASE_URL: Base URL of the financing REST API
        API_KEY: Value sent as ``x-api-key`` on every API request
        PUBLIC_BASE_URL: Public origin used to build shareable links
        APP_NAME: Display name for the application
        DEBUG: Enable debug mode (shows API docs, disables tracing export)
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        REQUEST_TIMEOUT: Timeout for API requests in seconds
        MAX_REFRESH_ATTEMPTS: Token refresh attempts after a 401
        TOKEN_REFRESH_MARGIN_SECONDS: Refresh access tokens this long before expiry
        TOKEN_REFRESH_REUSE_SECONDS: How long a refreshed token pair is handed to
            requests that still carry the old refresh token
        AUTH_COOKIE_NAME: Cookie holding the persisted auth state
    """

    # Remote API
    API_BASE_URL: str = Field(
        default="https://dev-api.medent-finance.com/api",
        description="Base URL of the financing REST API",
    )
    API_KEY: str = Field(default="", description="API key sent as x-api-key")
    PUBLIC_BASE_URL: str = Field(
        default="",
        description="Public origin for share links (derived from API_BASE_URL if empty)",
    )

    # Application configuration
    APP_NAME: str = Field(default="Medent Finance", description="Display name")
    DEBUG: bool = Field(default=True, description="Enable debug mode")

    # Server configuration
    HOST: str = Field(default="0.0.0.0", description="Server bind address")
    PORT: int = Field(default=3000, ge=1, le=65535, description="Server port number")

    # Logging configuration
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    ENABLE_REQUEST_TRACING: bool = Field(
        default=True,
        description="Enable distributed request tracing with request IDs",
    )
    ENVIRONMENT: str = Field(default="production", description="Deployment environment")
    OTEL_EXPORTER_OTLP_ENDPOINT: str = Field(
        default="localhost:4317",
        description="OTLP gRPC endpoint spans are exported to",
    )
    TRACING_EXCLUDED_URLS: str = Field(
        default="/health,/metrics,/api/healthz,/static",
        description="Comma-separated routes left out of tracing",
    )

    # HTTP client configuration
    REQUEST_TIMEOUT: float = Field(
        default=15.0,
        gt=0,
        le=60.0,
        description="Default timeout for API requests in seconds",
    )

    # Session / token handling
    MAX_REFRESH_ATTEMPTS: int = Field(default=3, ge=1, le=5)
    TOKEN_REFRESH_MARGIN_SECONDS: int = Field(default=120, ge=0)
    TOKEN_REFRESH_REUSE_SECONDS: float = Field(default=30.0, ge=0)
    AUTH_COOKIE_NAME: str = Field(default="auth-storage")
    AUTH_COOKIE_MAX_AGE_DAYS: int = Field(default=30, ge=1)
    AUTH_COOKIE_SECURE: bool = Field(default=False)

    # Basic auth gate (/api/auth/check)
    BASIC_AUTH_USER: str = Field(default="")
    BASIC_AUTH_PASSWORD: str = Field(default="")

    # Third-party endpoints
    SMS_FUNCTION_URL: str = Field(
        default="https://asia-northeast1-medent-9167b.cloudfunctions.net/sendSMS",
        description="Cloud function that delivers custom SMS messages",
    )
    POSTAL_LOOKUP_URL: str = Field(
        default="https://zipcloud.ibsnet.co.jp/api/search",
        description="Postal code to address lookup service",
    )

    DASHBOARD_POLL_SECONDS: int = Field(default=30, ge=5)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator("API_BASE_URL", "SMS_FUNCTION_URL", "POSTAL_LOOKUP_URL")
    @classmethod
    def validate_url(cls, value: str) -> str:
        """
        Validate that service URLs are properly formatted.

        Args:
            value: The URL to validate

        Returns:
            The validated URL without trailing slash

        Raises:
            ValueError: If URL is invalid
        """
        if not value:
            raise ValueError("Service URL cannot be empty")

        value = value.rstrip("/")

        if not (value.startswith("http://") or value.startswith("https://")):
            raise ValueError(
                f"Service URL must start with http:// or https://, got: {value}"
            )

        return value

    @model_validator(mode="after")
    def derive_public_base_url(self) -> "Settings":
        """Fill PUBLIC_BASE_URL from the API origin when it is not configured."""
        if not self.PUBLIC_BASE_URL:
            self.PUBLIC_BASE_URL = self.API_BASE_URL.replace("/api", "").replace(
                "-api", ""
            )
        self.PUBLIC_BASE_URL = self.PUBLIC_BASE_URL.rstrip("/")
        return self


# Global settings instance
settings = Settings()
