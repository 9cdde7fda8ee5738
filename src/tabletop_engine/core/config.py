"""Configuration management for the tabletop session engine.

This module provides centralized configuration management using pydantic-settings,
supporting environment variables, .env files, and runtime configuration overrides.

Example:
    >>> from tabletop_engine.core.config import get_settings
    >>> settings = get_settings()
    >>> settings.session.max_write_retries
    5

Environment Variables:
    TABLETOP_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    TABLETOP_GAME_AUTO_END_COMBAT: Clear combat state once an encounter is decided
    TABLETOP_SESSION_MAX_WRITE_RETRIES: Attempts for a read-decide-write cycle
    TABLETOP_STORAGE_BACKEND: Session store backend ('memory' or 'sqlite')
    TABLETOP_STORAGE_DATABASE_PATH: Path to the SQLite database file
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tabletop_engine.core.constants import PLAIN_DICE_PATTERN
from tabletop_engine.core.exceptions import ConfigurationError


class GameSettings(BaseSettings):
    """Configuration for combat and turn handling.

    Attributes:
        initiative_die: Dice notation rolled (plus modifier) for initiative.
        auto_end_combat: Clear the combat state in the same write that
            decides the encounter.
    """

    model_config = SettingsConfigDict(
        env_prefix="TABLETOP_GAME_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    initiative_die: str = Field(
        default="1d20",
        description="Die rolled for initiative",
    )
    auto_end_combat: bool = Field(
        default=True,
        description="End combat automatically on victory or defeat",
    )

    @field_validator("initiative_die", mode="after")
    @classmethod
    def validate_initiative_die(cls, value: str) -> str:
        """Ensure the initiative die is plain dice notation without modifier.

        Raises:
            ConfigurationError: If the value is not of the form NdS.
        """
        if not PLAIN_DICE_PATTERN.match(value.strip()):
            raise ConfigurationError(
                f"initiative_die must look like '1d20', got {value!r}",
                config_key="initiative_die",
            )
        return value


class SessionSettings(BaseSettings):
    """Configuration for optimistic-write retries.

    Attributes:
        max_write_retries: Attempts for one read-decide-write cycle.
        retry_wait_min: Minimum backoff between attempts, in seconds.
        retry_wait_max: Maximum backoff between attempts, in seconds.
    """

    model_config = SettingsConfigDict(
        env_prefix="TABLETOP_SESSION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    max_write_retries: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Attempts before a version conflict is surfaced",
    )
    retry_wait_min: float = Field(
        default=0.0,
        ge=0,
        le=10,
        description="Minimum wait between attempts",
    )
    retry_wait_max: float = Field(
        default=0.2,
        ge=0,
        le=30,
        description="Maximum wait between attempts",
    )

    @model_validator(mode="after")
    def validate_wait_window(self) -> "SessionSettings":
        """Ensure the retry wait window is ordered.

        Raises:
            ConfigurationError: If retry_wait_min > retry_wait_max.
        """
        if self.retry_wait_min > self.retry_wait_max:
            raise ConfigurationError(
                f"retry_wait_min ({self.retry_wait_min}) must not exceed "
                f"retry_wait_max ({self.retry_wait_max})",
                config_key="retry_wait_min",
            )
        return self


class StorageSettings(BaseSettings):
    """Configuration for the session store.

    Attributes:
        backend: Which SessionStore implementation to build.
        database_path: Path to the SQLite database file.
        busy_timeout_seconds: How long SQLite waits on a locked database.
    """

    model_config = SettingsConfigDict(
        env_prefix="TABLETOP_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    backend: Literal["memory", "sqlite"] = Field(
        default="sqlite",
        description="Session store backend",
    )
    database_path: Path = Field(
        default=Path("data/tabletop.db"),
        description="Path to SQLite database",
    )
    busy_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        le=120,
        description="SQLite busy timeout",
    )


class NarrationSettings(BaseSettings):
    """Configuration for narration handling.

    Attributes:
        max_response_chars: Replies longer than this are truncated before parsing.
        history_limit: Number of prior messages forwarded to the narrator.
    """

    model_config = SettingsConfigDict(
        env_prefix="TABLETOP_NARRATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    max_response_chars: int = Field(
        default=20_000,
        ge=100,
        description="Maximum narration reply length",
    )
    history_limit: int = Field(
        default=10,
        ge=0,
        le=100,
        description="Prior messages sent with each narration request",
    )


class Settings(BaseSettings):
    """Main application settings aggregating all configuration domains.

    Attributes:
        app_name: Application name.
        app_version: Application version string.
        debug: Enable debug mode.
        log_level: Application logging level.
        log_json: Emit JSON log lines instead of console output.
        log_file: Optional file receiving a copy of every log entry.
        game: Combat settings.
        session: Write retry settings.
        storage: Session store settings.
        narration: Narration settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="TABLETOP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    app_name: str = Field(
        default="Tabletop Session Engine",
        description="Application name",
    )
    app_version: str = Field(
        default="0.1.0",
        description="Application version",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_json: bool = Field(
        default=False,
        description="Render logs as JSON",
    )
    log_file: Path | None = Field(
        default=None,
        description="Optional log file path",
    )

    game: GameSettings = Field(default_factory=GameSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    narration: NarrationSettings = Field(default_factory=NarrationSettings)

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return not self.debug


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the cached application settings.

    Returns:
        The application Settings instance.

    Raises:
        ConfigurationError: If required configuration is missing or invalid.
    """
    try:
        return Settings()
    except ConfigurationError:
        raise
    except Exception as exc:
        raise ConfigurationError(
            f"Failed to load application settings: {exc}",
            details={"original_error": str(exc)},
        ) from exc


def clear_settings_cache() -> None:
    """Clear the settings cache, forcing a reload on next access."""
    get_settings.cache_clear()


__all__ = [
    "GameSettings",
    "SessionSettings",
    "StorageSettings",
    "NarrationSettings",
    "Settings",
    "get_settings",
    "clear_settings_cache",
]
