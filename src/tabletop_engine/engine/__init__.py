"""Game engine: dice, combat, narration validation and state mutation."""

from __future__ import annotations

from tabletop_engine.engine.combat import (
    CombatEndCheck,
    add_combatant,
    advance_turn,
    current_combatant,
    get_combatant,
    is_player_turn,
    should_combat_end,
    start_combat,
    tick_end_of_turn,
)
from tabletop_engine.engine.dice import (
    DiceResult,
    DiceRoller,
    ParsedDice,
    is_valid_notation,
    parse_notation,
)
from tabletop_engine.engine.game_service import (
    ActionOutcome,
    GameService,
    NarrationSource,
    create_game_service,
)
from tabletop_engine.engine.mutations import ApplyResult, MutationApplier, SkippedChange
from tabletop_engine.engine.narration import (
    FieldResult,
    FieldStatus,
    NarrationValidator,
    extract_narrative,
    format_for_display,
    has_state_changes,
    requires_roll,
)


__all__ = [
    # Dice
    "DiceRoller",
    "DiceResult",
    "ParsedDice",
    "parse_notation",
    "is_valid_notation",
    # Combat
    "CombatEndCheck",
    "start_combat",
    "add_combatant",
    "advance_turn",
    "tick_end_of_turn",
    "should_combat_end",
    "current_combatant",
    "is_player_turn",
    "get_combatant",
    # Narration
    "NarrationValidator",
    "FieldResult",
    "FieldStatus",
    "extract_narrative",
    "requires_roll",
    "has_state_changes",
    "format_for_display",
    # Mutations
    "MutationApplier",
    "ApplyResult",
    "SkippedChange",
    # Service
    "GameService",
    "ActionOutcome",
    "NarrationSource",
    "create_game_service",
]
