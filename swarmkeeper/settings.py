"""
Swarmkeeper Settings - Configuration management using Pydantic Settings.

Loads configuration from environment variables and .env files.
"""

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Find project root (where .env file is located)
PROJECT_ROOT = Path(__file__).parent.parent


class SwarmkeeperSettings(BaseSettings):
    """
    Swarmkeeper configuration settings.

    Settings are loaded from:
    1. Environment variables (highest priority)
    2. .env file in the project root
    3. Default values (lowest priority)
    """

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
        env_prefix="SK_",  # All Swarmkeeper env vars must start with SK_
    )

    # Docker Configuration
    docker_binary: str = Field(
        default="docker",
        description="Docker CLI executable used to talk to the daemon (env: SK_DOCKER_BINARY)",
    )

    docker_host: str | None = Field(
        default=None,
        description="Daemon address passed to the CLI as DOCKER_HOST (env: SK_DOCKER_HOST or DOCKER_HOST)",
        validation_alias=AliasChoices("SK_DOCKER_HOST", "DOCKER_HOST"),
    )

    command_timeout: float = Field(
        default=60.0,
        description="Seconds a single docker CLI call may take (env: SK_COMMAND_TIMEOUT)",
    )

    # Convergence Configuration
    poll_interval: float = Field(
        default=5.0,
        description="Seconds between convergence polls (env: SK_POLL_INTERVAL)",
    )

    default_converge_delay: str = Field(
        default="7s",
        description="Delay before the first convergence poll (env: SK_DEFAULT_CONVERGE_DELAY)",
    )

    default_converge_timeout: str = Field(
        default="3m",
        description="Time budget for a service to converge (env: SK_DEFAULT_CONVERGE_TIMEOUT)",
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR) (env: SK_LOG_LEVEL)",
    )


# Global settings instance
_settings: SwarmkeeperSettings | None = None


def get_settings() -> SwarmkeeperSettings:
    """
    Get the global settings instance.

    Creates the settings instance on first call, then returns cached instance.

    Returns:
        SwarmkeeperSettings instance
    """
    global _settings
    if _settings is None:
        _settings = SwarmkeeperSettings()
    return _settings


def reload_settings() -> SwarmkeeperSettings:
    """
    Reload settings from environment/files.

    Useful for testing or when .env file changes.

    Returns:
        Fresh SwarmkeeperSettings instance
    """
    global _settings
    _settings = SwarmkeeperSettings()
    return _settings
