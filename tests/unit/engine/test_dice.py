"""Tests for dice rolling mechanics."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from tabletop_engine.core.exceptions import DiceRollError, InvalidInputError
from tabletop_engine.engine.dice import (
    DiceResult,
    DiceRoller,
    ParsedDice,
    is_valid_notation,
    parse_notation,
)
from tabletop_engine.models.enums import RollMode, RollType


class TestParseNotation:
    """Tests for dice notation parsing."""

    def test_simple_notation(self) -> None:
        """Test parsing notation without a modifier."""
        assert parse_notation("3d8") == ParsedDice(count=3, sides=8, modifier=0)

    def test_positive_and_negative_modifiers(self) -> None:
        """Test parsing signed modifiers."""
        assert parse_notation("2d6+3").modifier == 3
        assert parse_notation("1d20-2").modifier == -2

    def test_case_and_whitespace(self) -> None:
        """Test that case and surrounding whitespace are ignored."""
        assert parse_notation("  1D20+5 ") == ParsedDice(count=1, sides=20, modifier=5)

    @pytest.mark.parametrize("notation", ["2dsix", "d20", "1d20+", "2d6+1d4", "", "abc"])
    def test_malformed_notation(self, notation: str) -> None:
        """Test that malformed notation raises DiceRollError."""
        with pytest.raises(DiceRollError) as exc_info:
            parse_notation(notation)

        assert exc_info.value.expression == notation

    @pytest.mark.parametrize("notation", ["0d6", "101d6", "1d1", "1d101", "1d20+101"])
    def test_out_of_bounds(self, notation: str) -> None:
        """Test bounds on count, sides and modifier."""
        with pytest.raises(DiceRollError):
            parse_notation(notation)

    def test_dice_error_is_invalid_input(self) -> None:
        """Test that callers can catch notation errors as input errors."""
        with pytest.raises(InvalidInputError):
            parse_notation("nope")

    def test_is_valid_notation(self) -> None:
        """Test the pattern-only validity check."""
        assert is_valid_notation("2d6+3")
        assert not is_valid_notation("2dsix")
        assert not is_valid_notation("0d6")
        assert not is_valid_notation("1d0")
        assert not is_valid_notation(None)


def roll_until(roll: Callable[[], DiceResult], found: Callable[[DiceResult], bool]) -> DiceResult:
    """Roll repeatedly until a result matches."""
    for _ in range(5000):
        result = roll()
        if found(result):
            return result
    raise AssertionError("no matching roll")


class TestDiceRoller:
    """Tests for the DiceRoller class."""

    def test_simple_d20_roll(self, dice_roller: DiceRoller) -> None:
        """Test simple d20 roll."""
        result = dice_roller.roll("1d20")

        assert isinstance(result, DiceResult)
        assert 1 <= result.total <= 20
        assert len(result.rolls) == 1
        assert result.mode == RollMode.RNG

    def test_roll_with_modifier(self, dice_roller: DiceRoller) -> None:
        """Test roll with positive modifier."""
        result = dice_roller.roll("1d20+5")

        assert result.modifier == 5
        assert result.total == result.rolls[0] + 5

    def test_multiple_dice(self, dice_roller: DiceRoller) -> None:
        """Test rolling multiple dice."""
        result = dice_roller.roll("3d6")

        assert 3 <= result.total <= 18
        assert len(result.rolls) == 3
        assert all(1 <= r <= 6 for r in result.rolls)
        assert result.total == sum(result.rolls)

    def test_uppercase_notation(self, dice_roller: DiceRoller) -> None:
        result = dice_roller.roll(" 2D8-1 ")

        assert result.notation == "2D8-1"
        assert result.total == sum(result.rolls) - 1

    def test_seed_reproducible(self) -> None:
        """Test that equal seeds give equal roll sequences."""
        roller = DiceRoller(seed=7)
        first = [roller.roll("4d6").rolls for _ in range(3)]
        roller = DiceRoller(seed=7)
        second = [roller.roll("4d6").rolls for _ in range(3)]

        assert first == second

    def test_out_of_bounds_never_rolled(self, dice_roller: DiceRoller) -> None:
        with pytest.raises(DiceRollError):
            dice_roller.roll("500d6")

    def test_critical_hit_on_single_d20(self, dice_roller: DiceRoller) -> None:
        """Test that a natural 20 on 1d20 is a critical hit."""
        result = roll_until(lambda: dice_roller.roll("1d20+3"), lambda r: r.rolls == [20])

        assert result.critical_hit is True
        assert result.critical_fail is False
        assert result.total == 23

    def test_critical_fail_on_single_d20(self, dice_roller: DiceRoller) -> None:
        """Test that a natural 1 on 1d20 is a critical fail."""
        result = roll_until(lambda: dice_roller.roll("1d20"), lambda r: r.rolls == [1])

        assert result.critical_fail is True
        assert result.critical_hit is False

    def test_no_critical_on_multiple_d20(self, dice_roller: DiceRoller) -> None:
        """Test that critical flags only apply to a single d20."""
        result = roll_until(lambda: dice_roller.roll("2d20"), lambda r: 20 in r.rolls)

        assert result.critical_hit is False
        assert result.critical_fail is False

    def test_advantage_keeps_higher(self, dice_roller: DiceRoller) -> None:
        """Test rolling with advantage."""
        for _ in range(50):
            result = dice_roller.roll_d20(2, RollType.ADVANTAGE)

            assert len(result.rolls) == 2
            assert result.total == max(result.rolls) + 2
            assert result.notation == "1d20+2"
            assert result.roll_type == RollType.ADVANTAGE

    def test_disadvantage_keeps_lower(self, dice_roller: DiceRoller) -> None:
        """Test rolling with disadvantage."""
        for _ in range(50):
            result = dice_roller.roll_d20(-1, RollType.DISADVANTAGE)

            assert len(result.rolls) == 2
            assert result.total == min(result.rolls) - 1

    def test_disadvantage_crit_follows_kept_die(self, dice_roller: DiceRoller) -> None:
        """Test that a 20 on the dropped die is not a critical hit."""
        result = roll_until(
            lambda: dice_roller.roll_d20(0, RollType.DISADVANTAGE),
            lambda r: 20 in r.rolls and min(r.rolls) < 20,
        )

        assert result.critical_hit is False
        assert result.total == min(result.rolls)

    def test_advantage_modifier_bounds(self, dice_roller: DiceRoller) -> None:
        with pytest.raises(DiceRollError):
            dice_roller.roll_d20(150, RollType.ADVANTAGE)

    def test_saving_throw(self, dice_roller: DiceRoller) -> None:
        """Test saving throws against a DC."""
        for _ in range(20):
            result, success = dice_roller.roll_saving_throw(3, 15)

            assert success is (result.total >= 15)
            assert result.total == result.rolls[0] + 3

    def test_critical_damage_doubles_dice(self, dice_roller: DiceRoller) -> None:
        """Test that a critical hit doubles the dice count, not the modifier."""
        result = dice_roller.roll_damage("2d6+3", critical=True)

        assert result.notation == "4d6+3"
        assert len(result.rolls) == 4
        assert result.total == sum(result.rolls) + 3

    def test_initiative_roll(self, dice_roller: DiceRoller) -> None:
        """Test initiative applies the modifier to a d20."""
        result = dice_roller.roll_initiative(-1)

        assert result.notation == "1d20-1"
        assert result.total == result.rolls[0] - 1

    def test_initiative_custom_die(self, dice_roller: DiceRoller) -> None:
        result = dice_roller.roll_initiative(2, die="1d12")

        assert result.notation == "1d12+2"
        assert 3 <= result.total <= 14


class TestPlayerEntered:
    """Tests for results entered by players."""

    def test_single_die(self, dice_roller: DiceRoller) -> None:
        """Test a single-die entered result."""
        result = dice_roller.player_entered("1d20+5", 25)

        assert result.rolls == [20]
        assert result.critical_hit is True
        assert result.mode == RollMode.PLAYER_ENTERED

    def test_distributes_across_dice(self, dice_roller: DiceRoller) -> None:
        """Test that the base roll is spread across dice."""
        result = dice_roller.player_entered("3d6+2", 14)

        assert sum(result.rolls) == 12
        assert len(result.rolls) == 3
        assert all(1 <= r <= 6 for r in result.rolls)
        assert result.total == 14

    @pytest.mark.parametrize("value", [5, 26])
    def test_impossible_value(self, dice_roller: DiceRoller, value: int) -> None:
        """Test that impossible totals are rejected."""
        with pytest.raises(DiceRollError) as exc_info:
            dice_roller.player_entered("1d20+5", value)

        assert "Possible range: 6 to 25" in str(exc_info.value)


class TestFormatResult:
    """Tests for result formatting."""

    def test_format_with_reason_and_critical(self) -> None:
        """Test the full formatted line."""
        result = DiceResult(
            notation="1d20+5",
            rolls=[20],
            modifier=5,
            total=25,
            critical_hit=True,
        )

        assert DiceRoller.format_result(result, "Attack") == "Attack: 1d20+5: [20]+5 = 25 (CRITICAL HIT!)"

    def test_format_without_modifier(self) -> None:
        """Test that a zero modifier is omitted."""
        result = DiceResult(notation="2d6", rolls=[3, 4], modifier=0, total=7)

        assert DiceRoller.format_result(result) == "2d6: [3, 4] = 7"

    def test_format_negative_modifier(self) -> None:
        """Test negative modifiers keep their sign."""
        result = DiceResult(notation="1d8-1", rolls=[1], modifier=-1, total=0)

        assert DiceRoller.format_result(result) == "1d8-1: [1]-1 = 0"
