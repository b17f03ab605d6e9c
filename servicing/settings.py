"""
Servicing Settings - Configuration management using Pydantic Settings.

Loads configuration from environment variables and .env files.
"""

import logging
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServicingSettings(BaseSettings):
    """
    Servicing configuration settings.

    Settings are loaded from:
    1. Environment variables (highest priority)
    2. .env file in current directory
    3. Default values (lowest priority)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="SERVICING_",  # All Servicing env vars must start with SERVICING_
    )

    # Disk layout
    cache_dir: Path = Field(
        default_factory=lambda: Path.home() / ".servicing",
        description="Directory holding generated configs and the saved cache (env: SERVICING_CACHE_DIR)",
    )

    cache_file_name: str = Field(
        default="services.bin",
        description="File name of the persisted service cache (env: SERVICING_CACHE_FILE_NAME)",
    )

    config_file_suffix: str = Field(
        default="_service.yaml",
        description="Suffix appended to the service name for generated configs (env: SERVICING_CONFIG_FILE_SUFFIX)",
    )

    # External orchestrator
    sky_command: str = Field(
        default="sky",
        description="Executable of the SkyPilot command line tool (env: SERVICING_SKY_COMMAND)",
    )

    # Readiness probing
    http_timeout: float = Field(
        default=10.0,
        description="Timeout in seconds for readiness probes (env: SERVICING_HTTP_TIMEOUT)",
    )

    poll_interval: float = Field(
        default=5.0,
        description="Seconds between readiness probe attempts (env: SERVICING_POLL_INTERVAL)",
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR) (env: SERVICING_LOG_LEVEL)",
    )


# Global settings instance
_settings: ServicingSettings | None = None


def get_settings() -> ServicingSettings:
    """
    Get the global settings instance.

    Creates the settings instance on first call, then returns cached instance.

    Returns:
        ServicingSettings instance
    """
    global _settings
    if _settings is None:
        _settings = ServicingSettings()
    return _settings


def reload_settings() -> ServicingSettings:
    """
    Reload settings from environment/files.

    Useful for testing or when .env file changes.

    Returns:
        Fresh ServicingSettings instance
    """
    global _settings
    _settings = ServicingSettings()
    return _settings


def configure_logging(settings: ServicingSettings | None = None) -> None:
    """Configure logging based on settings."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
