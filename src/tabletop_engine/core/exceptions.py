"""Custom exception hierarchy for the tabletop session engine.

This module defines the error taxonomy shared by the combat state machine,
the narration validator, the mutation applier and the session store. All
exceptions inherit from TabletopEngineError, enabling unified error handling
at the transport boundary while preserving domain-specific context.

Taxonomy:
    InvalidInputError: Malformed caller input. Never retried automatically.
    VersionConflictError: Optimistic write lost a race. Re-read and retry.
    MissingNarrativeError: Narration reply carried no usable text.
    NotFoundError: Session or combatant missing. Fatal for the request.

Example:
    >>> from tabletop_engine.core.exceptions import VersionConflictError
    >>> raise VersionConflictError("Session was modified", session_id="abc", expected_version=3)
"""

from __future__ import annotations

from typing import Any


class TabletopEngineError(Exception):
    """Base exception for all tabletop engine errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary containing additional error context.
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        """Initialize the base exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary containing additional error context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the exception message with optional details.

        Returns:
            Formatted error message including any provided details.
        """
        if self.details:
            detail_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} [{detail_str}]"
        return self.message

    def __repr__(self) -> str:
        """Return a detailed string representation of the exception."""
        return f"{self.__class__.__name__}(message={self.message!r}, details={self.details!r})"


# =============================================================================
# Input Validation Exceptions
# =============================================================================


class InvalidInputError(TabletopEngineError):
    """Raised when caller-supplied data is malformed.

    This covers empty or duplicated start-combat participant lists, bad
    dice notation, and wrongly typed state-change values. It is never
    retried automatically and is surfaced to the caller as-is.
    """

    def __init__(
        self,
        message: str,
        *,
        field_name: str | None = None,
        invalid_value: Any | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize invalid input error with field context.

        Args:
            message: Human-readable error description.
            field_name: Name of the field that failed validation.
            invalid_value: The value that failed validation.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if field_name:
            combined_details["field_name"] = field_name
        if invalid_value is not None:
            combined_details["invalid_value"] = invalid_value
        self.field_name = field_name
        super().__init__(message, details=combined_details)


class DiceRollError(InvalidInputError):
    """Raised when dice notation cannot be parsed or is out of bounds."""

    def __init__(
        self,
        message: str,
        *,
        expression: str | None = None,
        field_name: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize dice roll error with expression context.

        Args:
            message: Human-readable error description.
            expression: The dice expression that caused the error.
            field_name: Name of the field carrying the expression, if any.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if expression is not None:
            combined_details["expression"] = expression
        self.expression = expression
        super().__init__(message, field_name=field_name, details=combined_details)


class MissingNarrativeError(TabletopEngineError):
    """Raised when a structured narration reply has no narrative text.

    The narration pipeline catches this and falls back to treating the
    whole raw reply as narrative instead of failing the turn.
    """


# =============================================================================
# Storage Exceptions
# =============================================================================


class NotFoundError(TabletopEngineError):
    """Raised when a session, combatant or map token does not exist."""

    def __init__(
        self,
        message: str,
        *,
        resource: str | None = None,
        resource_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize not-found error with resource context.

        Args:
            message: Human-readable error description.
            resource: Kind of resource that was missing (e.g. 'session').
            resource_id: Identifier that was looked up.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if resource:
            combined_details["resource"] = resource
        if resource_id is not None:
            combined_details["resource_id"] = resource_id
        super().__init__(message, details=combined_details)


class VersionConflictError(TabletopEngineError):
    """Raised when an optimistic write loses the race for a session version.

    This is expected and retryable: the caller must re-read the session
    and resubmit against the fresh version.
    """

    def __init__(
        self,
        message: str,
        *,
        session_id: str | None = None,
        expected_version: int | None = None,
        actual_version: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize version conflict error with version context.

        Args:
            message: Human-readable error description.
            session_id: Session whose write was rejected.
            expected_version: Version the writer last observed.
            actual_version: Version currently stored, when known.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if session_id:
            combined_details["session_id"] = session_id
        if expected_version is not None:
            combined_details["expected_version"] = expected_version
        if actual_version is not None:
            combined_details["actual_version"] = actual_version
        self.session_id = session_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(message, details=combined_details)


class StorageError(TabletopEngineError):
    """Raised when the underlying store fails for reasons other than a conflict."""


# =============================================================================
# Game Engine Exceptions
# =============================================================================


class GameEngineError(TabletopEngineError):
    """Base exception for game engine state errors."""


class CombatError(GameEngineError):
    """Raised when a combat operation is not valid in the current state.

    This includes starting combat twice, advancing turns with no active
    encounter, or inconsistent initiative data.
    """

    def __init__(
        self,
        message: str,
        *,
        combatant_id: str | None = None,
        round_number: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize combat error with combat context.

        Args:
            message: Human-readable error description.
            combatant_id: Identifier of the combatant involved.
            round_number: Current combat round when error occurred.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if combatant_id:
            combined_details["combatant_id"] = combatant_id
        if round_number is not None:
            combined_details["round_number"] = round_number
        super().__init__(message, details=combined_details)


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationError(TabletopEngineError):
    """Raised when application configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize configuration error with config key context.

        Args:
            message: Human-readable error description.
            config_key: The configuration key that caused the error.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if config_key:
            combined_details["config_key"] = config_key
        super().__init__(message, details=combined_details)


__all__ = [
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
]
