"""
Application Settings
===================

Capture defaults and environment configuration using Pydantic Settings.
Supports development, testing, and production environments.
"""

from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Main application settings with environment variable support."""

    # Application Configuration
    app_name: str = Field(default="domcapture", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(
        default="development", description="Environment: development, testing, production"
    )
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Resource Fetching Configuration
    fetch_timeout: float = Field(
        default=30.0, gt=0, description="Per-resource fetch timeout in seconds"
    )
    default_image_placeholder: Optional[str] = Field(
        default=None, description="Data URI used when a resource cannot be fetched"
    )
    default_cache_bust: bool = Field(
        default=False, description="Append a timestamp query parameter to fetched URLs"
    )

    # Rendering Configuration
    settle_delay_ms: int = Field(
        default=100, ge=0, description="Delay after image decode before drawing, in milliseconds"
    )
    default_jpeg_quality: float = Field(
        default=1.0, ge=0.0, le=1.0, description="JPEG quality when none is requested"
    )

    # Browser Configuration
    playwright_headless: bool = Field(default=True, description="Run browser in headless mode")
    playwright_timeout: int = Field(default=30000, description="Playwright timeout in milliseconds")
    browser_pool_size: int = Field(default=1, ge=1, description="Browser instance pool size")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        allowed = {"development", "testing", "production"}
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("default_image_placeholder")
    @classmethod
    def validate_placeholder(cls, v: Optional[str]) -> Optional[str]:
        """Placeholders must already be self-contained."""
        if v is not None and not v.startswith("data:"):
            raise ValueError("Image placeholder must be a data URI")
        return v

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, env_prefix="DOMCAPTURE_"
    )


# Global settings instance - will be initialized when needed
settings = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global settings
    if settings is None:
        settings = Settings()
    return settings


def reload_settings() -> Settings:
    """Reload settings from environment."""
    global settings
    settings = Settings()
    return settings
