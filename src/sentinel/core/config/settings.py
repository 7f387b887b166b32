"""
Core configuration management for Sentinel.

This module provides centralized configuration management using Pydantic
settings with support for environment variables and type validation. All
coordinator settings are defined here with sensible defaults.

Classes:
    Settings: Main configuration class with all application settings

Environment Variables:
    Settings can be overridden using environment variables with the same
    names as the class attributes (case-sensitive), or through a ``.env``
    file in the working directory.

Example:
    >>> from sentinel.core.config.settings import Settings
    >>> settings = Settings(RETRY_BACKOFF_SECONDS=0.5)
    >>> print(settings.DEFAULT_NAMESPACE)
    sentinel

Configuration Sections:
    - Application: Basic app configuration (name, version, environment)
    - Logging: Application logging configuration
    - Task Store: Where task configuration documents live
    - Execution: Retry backoff unit and outbound HTTP timeout
"""

from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    Attributes:
        APP_NAME: Application name identifier
        APP_VERSION: Current application version
        ENVIRONMENT: Deployment environment (development/staging/production)
        DEBUG: Enable debug mode with rich console logging

        LOG_LEVEL: Logging level (DEBUG/INFO/WARNING/ERROR/CRITICAL)
        LOG_FORMAT: Log format (json/text)
        LOG_FILE_PATH: Path for log file output (optional)

        DEFAULT_NAMESPACE: Namespace used when a trigger names none
        TASK_CONFIG_DIR: Base directory of the file-backed task store

        RETRY_BACKOFF_SECONDS: Length of one backoff unit; retry attempt k
            waits k units before it is issued
        HTTP_TIMEOUT_SECONDS: Timeout for outbound integration requests

    Example:
        >>> settings = Settings()
        >>> print(f"Backoff unit: {settings.RETRY_BACKOFF_SECONDS}s")
    """

    # Application
    APP_NAME: str = "Sentinel"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Logging Configuration
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"
    LOG_FILE_PATH: Optional[str] = None

    # Task Store
    DEFAULT_NAMESPACE: str = "sentinel"
    TASK_CONFIG_DIR: str = "./tasks"

    # Execution
    RETRY_BACKOFF_SECONDS: float = 1.0
    HTTP_TIMEOUT_SECONDS: float = 30.0

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """
        Validate logging level is a supported value.

        Converts to uppercase for consistency.

        Raises:
            ValueError: If log level is not supported
        """
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of: {valid_levels}")
        return v.upper()

    @field_validator("RETRY_BACKOFF_SECONDS", "HTTP_TIMEOUT_SECONDS")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("durations must be non-negative")
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",  # This will ignore extra fields from environment
    )


def get_settings() -> Settings:
    """Get application settings instance"""
    return Settings()


settings = Settings()
