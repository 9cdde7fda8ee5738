"""Core module providing configuration, logging, and base exceptions.

Exports:
    Exceptions:
        TabletopEngineError: Base exception for all engine errors.
        InvalidInputError, DiceRollError: Malformed caller input.
        VersionConflictError: Lost optimistic write.
        MissingNarrativeError: Narration reply without narrative.
        NotFoundError: Missing session, combatant or token.

    Configuration:
        Settings: Main application settings class.
        get_settings: Get the cached settings.
        clear_settings_cache: Force settings reload.

    Logging:
        configure_logging: Set up application logging.
        get_logger: Get a configured logger instance.
        bind_context: Add context to log entries.
        clear_context: Clear logging context.
"""

from __future__ import annotations

from tabletop_engine.core.config import (
    GameSettings,
    NarrationSettings,
    SessionSettings,
    Settings,
    StorageSettings,
    clear_settings_cache,
    get_settings,
)
from tabletop_engine.core.exceptions import (
    CombatError,
    ConfigurationError,
    DiceRollError,
    GameEngineError,
    InvalidInputError,
    MissingNarrativeError,
    NotFoundError,
    StorageError,
    TabletopEngineError,
    VersionConflictError,
)
from tabletop_engine.core.logging import (
    bind_context,
    clear_context,
    unbind_context,
    configure_logging,
    configure_logging_from_settings,
    get_logger,
)


__all__ = [
    # Exceptions
    "TabletopEngineError",
    "InvalidInputError",
    "DiceRollError",
    "MissingNarrativeError",
    "NotFoundError",
    "VersionConflictError",
    "StorageError",
    "GameEngineError",
    "CombatError",
    "ConfigurationError",
    # Configuration
    "Settings",
    "GameSettings",
    "SessionSettings",
    "StorageSettings",
    "NarrationSettings",
    "get_settings",
    "clear_settings_cache",
    # Logging
    "configure_logging",
    "configure_logging_from_settings",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
]
