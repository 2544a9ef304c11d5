"""
Configuration management for compose-harness

Handles configuration loading from environment variables, .env files
and command-line arguments using Pydantic settings.
"""

import logging
import shlex
from pathlib import Path
from typing import List, Optional

from pydantic import Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class HarnessConfig(BaseSettings):
    """
    Main configuration class for compose-harness.

    Configuration is loaded from:
    1. Environment variables (highest priority)
    2. .env file
    3. Default values (lowest priority)
    """

    model_config = SettingsConfigDict(
        env_prefix="COMPOSE_HARNESS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Tool configuration
    docker_compose_command: str = Field(
        default="docker compose",
        description="Command used to invoke docker compose (e.g. 'docker compose' or 'docker-compose')",
    )
    docker_command: str = Field(
        default="docker",
        description="Command used to invoke the docker CLI for port inspection",
    )
    project_name: Optional[str] = Field(
        default=None,
        description="Compose project name passed with -p",
    )
    command_timeout: Optional[float] = Field(
        default=600.0,
        description="Timeout in seconds for a single compose invocation",
    )

    # Waiting configuration
    service_timeout: float = Field(
        default=120.0,
        description="Default per-service readiness timeout in seconds",
    )
    poll_interval: float = Field(
        default=0.05,
        description="Delay in seconds between readiness check attempts",
    )
    log_stop_timeout: float = Field(
        default=10.0,
        description="Seconds to wait for log followers to finish on teardown",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    log_dir: str = Field(
        default="logs",
        description="Directory for harness log files",
    )
    verbose: bool = Field(
        default=False,
        description="Enable verbose console output",
    )
    enable_file_logging: bool = Field(
        default=False,
        description="Write subprocess output to files under log_dir",
    )

    @validator("log_level")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @validator("docker_compose_command", "docker_command")
    def validate_command(cls, v: str) -> str:
        """Validate a tool command is not blank."""
        if not v or not v.strip():
            raise ValueError("command must not be empty")
        return v.strip()

    @validator("service_timeout", "poll_interval", "log_stop_timeout")
    def validate_positive(cls, v: float) -> float:
        """Validate durations are positive."""
        if v <= 0:
            raise ValueError("duration must be greater than zero")
        return v

    @validator("command_timeout")
    def validate_command_timeout(cls, v: Optional[float]) -> Optional[float]:
        """Validate the command timeout if one is set."""
        if v is not None and v <= 0:
            raise ValueError("command_timeout must be greater than zero")
        return v

    def compose_argv(self) -> List[str]:
        """Get the compose command split into argv form."""
        return shlex.split(self.docker_compose_command)

    def docker_argv(self) -> List[str]:
        """Get the docker command split into argv form."""
        return shlex.split(self.docker_command)

    def get_log_dir_path(self) -> Path:
        """Get log directory as Path object."""
        return Path(self.log_dir)

    def create_directories(self) -> None:
        """Create the log directory structure if file logging is enabled."""
        if not self.enable_file_logging:
            return
        log_path = self.get_log_dir_path()
        log_path.mkdir(parents=True, exist_ok=True)
        (log_path / "compose").mkdir(exist_ok=True)

    @classmethod
    def from_cli_args(
        cls,
        verbose: bool = False,
        log_dir: str = "logs",
        log_level: Optional[str] = None,
        **kwargs,
    ) -> "HarnessConfig":
        """
        Create configuration from CLI arguments.

        Args:
            verbose: Enable verbose output
            log_dir: Log directory
            log_level: Log level override
            **kwargs: Additional configuration options

        Returns:
            Configured HarnessConfig instance
        """
        config_data = {
            "verbose": verbose,
            "log_dir": log_dir,
        }

        if log_level:
            config_data["log_level"] = log_level

        config_data.update(kwargs)

        return cls(**config_data)


def load_config(cli_overrides: Optional[dict] = None) -> HarnessConfig:
    """
    Load configuration with optional CLI overrides.

    Args:
        cli_overrides: CLI argument overrides

    Returns:
        Loaded configuration
    """
    config = HarnessConfig()

    if cli_overrides:
        config_data = config.model_dump()
        config_data.update(cli_overrides)
        config = HarnessConfig(**config_data)

    config.create_directories()

    return config


def get_default_config() -> HarnessConfig:
    """
    Get default configuration for development/testing.

    Returns:
        Default configuration instance
    """
    return HarnessConfig(
        log_level="DEBUG",
        verbose=True,
    )
