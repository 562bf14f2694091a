"""Configuration settings for devflash.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_cache_dir() -> Path:
    """Return the default cache directory."""
    return Path.home() / ".cache" / "devflash"


def _default_known_apps_dir() -> Path:
    """Return the default directory holding known app binaries."""
    return Path.home() / ".local" / "share" / "devflash" / "known-apps"


def _default_db_url() -> str:
    """Return the default database URL (SQLite)."""
    db_path = Path.home() / ".local" / "share" / "devflash" / "db.sqlite"
    return f"sqlite:///{db_path}"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the DEVFLASH_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="DEVFLASH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    cache_dir: Path = Field(
        default_factory=_default_cache_dir,
        description="Directory for cached cloud API responses",
    )
    db_url: str = Field(
        default_factory=_default_db_url,
        description="Database connection URL for flash history",
    )
    known_apps_dir: Path = Field(
        default_factory=_default_known_apps_dir,
        description="Directory holding known app binaries, one folder per platform",
    )

    # Operational modes
    offline: bool = Field(
        default=False,
        description="Offline mode - answer cloud lookups from the cache only",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Logging level",
    )

    # Cloud API
    api_url: str = Field(
        default="https://api.particle.io",
        description="Base URL of the device cloud API",
    )
    access_token: str | None = Field(
        default=None,
        description="Access token for the device cloud API",
    )
    api_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for cloud API requests",
    )

    # USB
    usb_transport: str | None = Field(
        default=None,
        description="USB transport factory as 'module:callable'",
    )

    # Timeouts and delays (in seconds). Tuned to real bootloader behavior.
    open_timeout: float = Field(
        default=3.0,
        gt=0,
        description="Timeout when opening a USB device",
    )
    open_poll_interval: float = Field(
        default=0.5,
        gt=0,
        description="Delay between USB open attempts",
    )
    reopen_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Timeout when reopening a device after a mode switch",
    )
    apply_reopen_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Timeout when reopening a device that is applying an update",
    )
    flash_apply_delay: float = Field(
        default=3.0,
        ge=0,
        description="Delay after a normal-mode update before reopening",
    )


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    The access token is masked.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    masked = settings.model_copy(
        update={"access_token": "***" if settings.access_token else None}
    )
    return masked.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
