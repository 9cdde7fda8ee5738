"""Dice rolling mechanics.

This module parses ``NdS[+/-M]`` dice notation, rolls it with the d20
library and builds results for values a player rolled at the table and
entered by hand. Notation is checked against the engine bounds before
anything reaches d20.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any

import d20

from tabletop_engine.core.constants import (
    DICE_NOTATION_PATTERN,
    MAX_DICE_COUNT,
    MAX_DICE_MODIFIER,
    MAX_DICE_SIDES,
    MIN_DICE_COUNT,
    MIN_DICE_SIDES,
)
from tabletop_engine.core.exceptions import DiceRollError
from tabletop_engine.core.logging import get_logger
from tabletop_engine.models.enums import RollMode, RollType


logger = get_logger(__name__)


@dataclass(frozen=True)
class ParsedDice:
    """A parsed dice notation.

    Attributes:
        count: Number of dice.
        sides: Sides per die.
        modifier: Static modifier added to the sum.
    """

    count: int
    sides: int
    modifier: int

    @property
    def is_single_d20(self) -> bool:
        """Check whether this is a single d20 roll."""
        return self.count == 1 and self.sides == 20

    @property
    def notation(self) -> str:
        """Canonical notation for these dice."""
        if self.modifier:
            return f"{self.count}d{self.sides}{self.modifier:+d}"
        return f"{self.count}d{self.sides}"


@dataclass(frozen=True)
class DiceResult:
    """The outcome of a roll.

    Attributes:
        notation: The notation that was rolled.
        rolls: Individual die results. Advantage and disadvantage rolls
            list both d20s.
        modifier: Static modifier applied.
        total: Final total.
        critical_hit: Natural 20 on a single d20.
        critical_fail: Natural 1 on a single d20.
        mode: Whether the value came from the RNG or was entered by a player.
        roll_type: Normal, advantage or disadvantage.
    """

    notation: str
    rolls: list[int]
    modifier: int
    total: int
    critical_hit: bool = False
    critical_fail: bool = False
    mode: RollMode = RollMode.RNG
    roll_type: RollType = RollType.NORMAL


def parse_notation(notation: str) -> ParsedDice:
    """Parse dice notation such as '2d6+5', '1d20-2' or '3d8'.

    Args:
        notation: Dice notation, surrounding whitespace ignored.

    Returns:
        ParsedDice with count, sides and modifier.

    Raises:
        DiceRollError: If the notation is malformed or out of bounds.
    """
    if not isinstance(notation, str):
        raise DiceRollError("Dice notation must be a string", expression=repr(notation))

    match = DICE_NOTATION_PATTERN.match(notation.strip())
    if not match:
        raise DiceRollError(
            f"Invalid dice notation: {notation}. Expected format: NdN+N (e.g., 1d20+5)",
            expression=notation,
        )

    count = int(match.group(1))
    sides = int(match.group(2))
    modifier = int(match.group(3)) if match.group(3) else 0

    if not MIN_DICE_COUNT <= count <= MAX_DICE_COUNT:
        raise DiceRollError(
            f"Dice count must be between {MIN_DICE_COUNT} and {MAX_DICE_COUNT}",
            expression=notation,
        )
    if not MIN_DICE_SIDES <= sides <= MAX_DICE_SIDES:
        raise DiceRollError(
            f"Dice sides must be between {MIN_DICE_SIDES} and {MAX_DICE_SIDES}",
            expression=notation,
        )
    if abs(modifier) > MAX_DICE_MODIFIER:
        raise DiceRollError(
            f"Modifier must be between -{MAX_DICE_MODIFIER} and {MAX_DICE_MODIFIER}",
            expression=notation,
        )

    return ParsedDice(count=count, sides=sides, modifier=modifier)


def is_valid_notation(notation: object) -> bool:
    """Check notation against the dice pattern without bounds checks."""
    return isinstance(notation, str) and DICE_NOTATION_PATTERN.match(notation.strip()) is not None


def _with_modifier(base: str, modifier: int) -> str:
    return f"{base}{modifier:+d}" if modifier else base


def _d20_values(expr: Any, *, kept_only: bool) -> list[int]:
    """Collect die faces from a d20 expression tree in roll order."""
    values: list[int] = []

    def traverse(node: Any) -> None:
        if isinstance(node, d20.Dice):
            for die in node.values:
                if die.kept or not kept_only:
                    values.append(die.number)
        else:
            for child in node.children:
                traverse(child)

    traverse(expr)
    return values


def _roll_expression(expression: str, notation: str) -> d20.RollResult:
    try:
        return d20.roll(expression)
    except d20.RollError as exc:
        raise DiceRollError(f"Invalid dice expression: {exc}", expression=notation) from exc


class DiceRoller:
    """Dice rolling on top of the d20 library.

    d20 draws from the module-level ``random`` source, so a seed given
    here reseeds it and makes the following roll sequence reproducible.

    Example:
        >>> roller = DiceRoller(seed=42)
        >>> result = roller.roll("1d20+5")
        >>> 6 <= result.total <= 25
        True
    """

    def __init__(self, *, seed: int | None = None) -> None:
        """Initialize the dice roller.

        Args:
            seed: Optional random seed for reproducible rolls.
        """
        self._seed = seed
        if seed is not None:
            random.seed(seed)
        logger.debug("DiceRoller initialized", seed=seed)

    def roll(self, notation: str) -> DiceResult:
        """Roll dice according to the given notation.

        Args:
            notation: Dice notation (e.g., '1d20+5', '2d6+3').

        Returns:
            DiceResult containing the individual rolls and total.

        Raises:
            DiceRollError: If the notation is invalid.
        """
        parsed = parse_notation(notation)
        result = _roll_expression(parsed.notation, notation)
        rolls = _d20_values(result.expr, kept_only=True)

        critical_hit = parsed.is_single_d20 and rolls[0] == 20
        critical_fail = parsed.is_single_d20 and rolls[0] == 1

        logger.debug("Dice rolled", notation=notation, rolls=rolls, total=result.total)

        return DiceResult(
            notation=notation.strip(),
            rolls=rolls,
            modifier=parsed.modifier,
            total=result.total,
            critical_hit=critical_hit,
            critical_fail=critical_fail,
        )

    def roll_d20(self, modifier: int = 0, roll_type: RollType = RollType.NORMAL) -> DiceResult:
        """Roll a d20 check, attack or save.

        Advantage keeps the higher of two d20s, disadvantage the lower.
        Critical flags follow the kept die.

        Args:
            modifier: Bonus added to the kept die.
            roll_type: Normal, advantage or disadvantage.

        Returns:
            DiceResult for the roll. With advantage or disadvantage
            ``rolls`` lists both d20s.
        """
        notation = _with_modifier("1d20", modifier)
        if roll_type == RollType.NORMAL:
            return self.roll(notation)

        # validates the modifier bounds
        parse_notation(notation)

        keep = "2d20kh1" if roll_type == RollType.ADVANTAGE else "2d20kl1"
        result = _roll_expression(_with_modifier(keep, modifier), notation)
        rolls = _d20_values(result.expr, kept_only=False)
        kept = _d20_values(result.expr, kept_only=True)[0]

        logger.debug(
            "d20 rolled",
            roll_type=roll_type,
            rolls=rolls,
            kept=kept,
            modifier=modifier,
        )

        return DiceResult(
            notation=notation,
            rolls=rolls,
            modifier=modifier,
            total=result.total,
            critical_hit=kept == 20,
            critical_fail=kept == 1,
            roll_type=roll_type,
        )

    def roll_saving_throw(
        self,
        bonus: int,
        dc: int,
        roll_type: RollType = RollType.NORMAL,
    ) -> tuple[DiceResult, bool]:
        """Roll a saving throw against a DC.

        Returns:
            Tuple of (roll result, whether the save succeeded).
        """
        result = self.roll_d20(bonus, roll_type)
        return result, result.total >= dc

    def roll_damage(self, notation: str, *, critical: bool = False) -> DiceResult:
        """Roll damage; a critical hit doubles the number of dice.

        Args:
            notation: Damage notation (e.g., '2d6+3').
            critical: Whether this is a critical hit.

        Returns:
            DiceResult for the damage roll.
        """
        if not critical:
            return self.roll(notation)

        parsed = parse_notation(notation)
        doubled = ParsedDice(count=parsed.count * 2, sides=parsed.sides, modifier=parsed.modifier)
        return self.roll(doubled.notation)

    def roll_initiative(self, modifier: int = 0, *, die: str = "1d20") -> DiceResult:
        """Roll initiative.

        Args:
            modifier: Initiative modifier.
            die: Die rolled before the modifier is added.

        Returns:
            DiceResult whose total is the initiative value.
        """
        return self.roll(_with_modifier(die, modifier))

    def player_entered(self, notation: str, value: int) -> DiceResult:
        """Build a result from a total a player rolled at the table.

        The base roll is spread across the dice as evenly as possible
        since the individual dice are unknown.

        Args:
            notation: The notation the player rolled.
            value: The total the player reported.

        Returns:
            DiceResult in player-entered mode.

        Raises:
            DiceRollError: If the value is impossible for the notation.
        """
        parsed = parse_notation(notation)
        base = value - parsed.modifier
        lowest = parsed.count
        highest = parsed.count * parsed.sides

        if not lowest <= base <= highest:
            raise DiceRollError(
                f"Entered value {value} is not possible for {notation}. "
                f"Possible range: {lowest + parsed.modifier} to {highest + parsed.modifier}",
                expression=notation,
                field_name="value",
            )

        rolls: list[int] = []
        remaining = base
        for index in range(parsed.count - 1):
            share = round(remaining / (parsed.count - index))
            die = max(1, min(parsed.sides, share))
            rolls.append(die)
            remaining -= die
        rolls.append(max(1, min(parsed.sides, remaining)))

        return DiceResult(
            notation=notation.strip(),
            rolls=rolls,
            modifier=parsed.modifier,
            total=value,
            critical_hit=parsed.is_single_d20 and rolls[0] == 20,
            critical_fail=parsed.is_single_d20 and rolls[0] == 1,
            mode=RollMode.PLAYER_ENTERED,
        )

    @staticmethod
    def format_result(result: DiceResult, reason: str | None = None) -> str:
        """Format a result for the chat log.

        Example:
            'Attack: 1d20+5: [20]+5 = 25 (CRITICAL HIT!)'
        """
        rolls = ", ".join(str(r) for r in result.rolls)
        modifier = f"{result.modifier:+d}" if result.modifier else ""
        text = f"{result.notation}: [{rolls}]{modifier} = {result.total}"

        if result.critical_hit:
            text += " (CRITICAL HIT!)"
        if result.critical_fail:
            text += " (Critical Fail)"
        if reason:
            text = f"{reason}: {text}"
        return text


__all__ = [
    "ParsedDice",
    "DiceResult",
    "DiceRoller",
    "parse_notation",
    "is_valid_notation",
]
