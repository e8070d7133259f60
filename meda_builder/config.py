"""Configuration settings for meda_builder.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.

Per-build parameters (VM sizing, output image, registry) live in the build
template, see meda_builder.templates.schema.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the MEDA_BUILDER_
    prefix. CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="MEDA_BUILDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Timeouts (in seconds)
    command_timeout: int = Field(
        default=60,
        ge=1,
        description="Timeout for short backend commands (start, stop, ip, delete)",
    )
    http_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for short Meda API requests",
    )

    # Readiness polling
    ready_poll_interval: float = Field(
        default=10.0,
        gt=0,
        description="Seconds between VM address polls",
    )
    ready_timeout: float = Field(
        default=300.0,
        gt=0,
        description="Seconds to wait for the VM to report an address",
    )


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
