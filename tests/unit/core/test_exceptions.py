"""Tests for the exception hierarchy."""

from __future__ import annotations

import pytest

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


class TestTabletopEngineError:
    """Tests for the base TabletopEngineError exception."""

    def test_basic_message(self) -> None:
        """Test exception with basic message."""
        exc = TabletopEngineError("Test error message")
        assert exc.message == "Test error message"
        assert exc.details == {}
        assert str(exc) == "Test error message"

    def test_with_details(self) -> None:
        """Test exception with additional details."""
        exc = TabletopEngineError(
            "Test error",
            details={"key": "value", "count": 42},
        )
        assert exc.details == {"key": "value", "count": 42}
        assert "key='value'" in str(exc)
        assert "count=42" in str(exc)

    def test_repr(self) -> None:
        """Test exception repr output."""
        exc = TabletopEngineError("Test", details={"x": 1})
        repr_str = repr(exc)
        assert "TabletopEngineError" in repr_str
        assert "Test" in repr_str
        assert "x" in repr_str


class TestInputExceptions:
    """Tests for input validation exceptions."""

    def test_invalid_input_records_field(self) -> None:
        """Test InvalidInputError with field context."""
        exc = InvalidInputError("Bad value", field_name="value", invalid_value=-3)
        assert exc.field_name == "value"
        assert exc.details["invalid_value"] == -3

    def test_dice_roll_error_is_invalid_input(self) -> None:
        """Test that dice errors are input errors."""
        exc = DiceRollError("Invalid dice", expression="2dsix", field_name="requires_roll.dice")
        assert isinstance(exc, InvalidInputError)
        assert exc.expression == "2dsix"
        assert exc.field_name == "requires_roll.dice"
        assert exc.details["expression"] == "2dsix"


class TestStorageExceptions:
    """Tests for storage exceptions."""

    def test_version_conflict_context(self) -> None:
        """Test VersionConflictError keeps version context."""
        exc = VersionConflictError(
            "Conflict",
            session_id="s1",
            expected_version=3,
            actual_version=4,
        )
        assert exc.session_id == "s1"
        assert exc.expected_version == 3
        assert exc.actual_version == 4
        assert "expected_version=3" in str(exc)

    def test_not_found_context(self) -> None:
        """Test NotFoundError resource details."""
        exc = NotFoundError("Missing", resource="session", resource_id="s9")
        assert exc.details == {"resource": "session", "resource_id": "s9"}

    def test_storage_error_inheritance(self) -> None:
        """Test StorageError is an engine error."""
        assert isinstance(StorageError("disk"), TabletopEngineError)


class TestGameEngineExceptions:
    """Tests for game engine exceptions."""

    def test_combat_error_context(self) -> None:
        """Test CombatError with combat context."""
        exc = CombatError("Invalid action", combatant_id="goblin", round_number=3)
        assert exc.details["combatant_id"] == "goblin"
        assert exc.details["round_number"] == 3
        assert isinstance(exc, GameEngineError)

    def test_missing_narrative_is_engine_error(self) -> None:
        """Test MissingNarrativeError inheritance."""
        with pytest.raises(TabletopEngineError):
            raise MissingNarrativeError("empty")


class TestConfigurationError:
    """Tests for configuration exceptions."""

    def test_config_key(self) -> None:
        """Test ConfigurationError carries the key."""
        exc = ConfigurationError("Bad config", config_key="initiative_die")
        assert exc.details["config_key"] == "initiative_die"
