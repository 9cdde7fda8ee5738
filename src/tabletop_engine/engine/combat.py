"""Turn and initiative management for combat encounters.

Every function here is pure: it takes a CombatState (or Combatant) and
returns a new one, leaving its input untouched. Persisting the result is
the caller's job.

Example:
    >>> state = start_combat(participants, DiceRoller(seed=1))
    >>> state = advance_turn(tick_end_of_turn(state))
    >>> should_combat_end(state).end
    False
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from tabletop_engine.core.constants import UNCONSCIOUS_CONDITION
from tabletop_engine.core.exceptions import CombatError, InvalidInputError, NotFoundError
from tabletop_engine.core.logging import get_logger
from tabletop_engine.engine.dice import DiceRoller
from tabletop_engine.models.combat import (
    Combatant,
    CombatState,
    Condition,
    InitiativeEntry,
    ParticipantInput,
)
from tabletop_engine.models.enums import CombatantType, CombatOutcome


logger = get_logger(__name__)


@dataclass(frozen=True)
class CombatEndCheck:
    """Result of an end-of-combat check.

    Attributes:
        end: Whether the encounter is decided.
        outcome: Victory or defeat when decided, otherwise None.
    """

    end: bool
    outcome: CombatOutcome | None = None


# =============================================================================
# Helpers
# =============================================================================


def _rebuild_state(state: CombatState, **changes: Any) -> CombatState:
    return CombatState.model_validate({**state.model_dump(), **changes})


def _rebuild_combatant(combatant: Combatant, **changes: Any) -> Combatant:
    return Combatant.model_validate({**combatant.model_dump(), **changes})


def _require_active(state: CombatState | None) -> CombatState:
    if state is None or not state.active:
        raise CombatError("No active combat")
    return state


def _roll_initiative(
    participant: ParticipantInput,
    roller: DiceRoller,
    initiative_die: str,
) -> int:
    if participant.initiative is not None:
        return participant.initiative
    result = roller.roll_initiative(participant.initiative_modifier, die=initiative_die)
    return result.total


def _build_combatant(participant: ParticipantInput, initiative: int) -> Combatant:
    return Combatant(
        id=participant.id,
        type=participant.type,
        name=participant.name,
        initiative=initiative,
        current_hp=participant.current_hp,
        max_hp=participant.max_hp,
        armor_class=participant.armor_class,
    )


def _build_entry(combatant: Combatant) -> InitiativeEntry:
    return InitiativeEntry(
        id=combatant.id,
        type=combatant.type,
        name=combatant.name,
        initiative=combatant.initiative,
    )


# =============================================================================
# Encounter Lifecycle
# =============================================================================


def start_combat(
    participants: Sequence[ParticipantInput],
    roller: DiceRoller,
    *,
    initiative_die: str = "1d20",
) -> CombatState:
    """Roll initiative and build the opening combat state.

    Participants with a pre-computed ``initiative`` skip the roll. The
    order is sorted by descending initiative; ties keep the order in
    which participants were given.

    Args:
        participants: Encounter participants.
        roller: Dice roller used for initiative.
        initiative_die: Die rolled before each participant's modifier.

    Returns:
        Active CombatState at round 1, turn index 0.

    Raises:
        InvalidInputError: If participants is empty or has duplicate IDs.
    """
    if not participants:
        raise InvalidInputError(
            "Cannot start combat without participants",
            field_name="participants",
        )

    seen: set[str] = set()
    for participant in participants:
        if participant.id in seen:
            raise InvalidInputError(
                f"Duplicate combatant id: {participant.id}",
                field_name="participants",
                invalid_value=participant.id,
            )
        seen.add(participant.id)

    combatants = [
        _build_combatant(p, _roll_initiative(p, roller, initiative_die)) for p in participants
    ]
    # sorted() is stable, so equal initiatives keep insertion order
    ordered = sorted(combatants, key=lambda c: c.initiative, reverse=True)

    state = CombatState(
        active=True,
        round=1,
        turn_index=0,
        initiative_order=[_build_entry(c) for c in ordered],
        combatants=combatants,
    )

    logger.info(
        "Combat started",
        combatants=len(combatants),
        first=state.initiative_order[0].name,
    )
    return state


def add_combatant(
    state: CombatState,
    participant: ParticipantInput,
    roller: DiceRoller,
    *,
    initiative_die: str = "1d20",
) -> CombatState:
    """Add a combatant to a running encounter.

    The new entry is inserted before the first entry with a strictly
    lower initiative. If that lands at or before the current turn, the
    turn index shifts so the same combatant keeps acting.

    Raises:
        CombatError: If no combat is active.
        InvalidInputError: If the ID is already in the encounter.
    """
    state = _require_active(state)
    if state.find_combatant(participant.id) is not None:
        raise InvalidInputError(
            f"Combatant already in combat: {participant.id}",
            field_name="id",
            invalid_value=participant.id,
        )

    combatant = _build_combatant(participant, _roll_initiative(participant, roller, initiative_die))
    order = list(state.initiative_order)

    insert_index = next(
        (i for i, entry in enumerate(order) if entry.initiative < combatant.initiative),
        len(order),
    )
    order.insert(insert_index, _build_entry(combatant))

    turn_index = state.turn_index
    if insert_index <= turn_index:
        turn_index += 1

    logger.info(
        "Combatant added",
        combatant=combatant.name,
        initiative=combatant.initiative,
        position=insert_index,
    )
    return _rebuild_state(
        state,
        initiative_order=order,
        combatants=[*state.combatants, combatant],
        turn_index=turn_index,
    )


def advance_turn(state: CombatState) -> CombatState:
    """Move to the next combatant able to act.

    The index moves forward one slot, wrapping to the top of the order
    (and the next round) when it runs past the end. Inactive combatants
    are then skipped, still wrapping and counting rounds, for at most one
    full lap. If nobody is active after a lap the turn goes to index 0 of
    the round after the current one.

    Raises:
        CombatError: If the state is not an active encounter.
    """
    state = _require_active(state)
    order = state.initiative_order
    size = len(order)

    index = state.turn_index + 1
    round_number = state.round
    if index >= size:
        index = 0
        round_number += 1

    for _ in range(size):
        combatant = state.find_combatant(order[index].id)
        if combatant is not None and combatant.is_active:
            if round_number != state.round:
                logger.info("New round started", round=round_number)
            logger.debug("Next turn", combatant=combatant.name, round=round_number)
            return _rebuild_state(state, turn_index=index, round=round_number)
        index += 1
        if index >= size:
            index = 0
            round_number += 1

    logger.warning(
        "No active combatant found after a full lap",
        round=state.round,
        combatants=size,
    )
    return _rebuild_state(state, turn_index=0, round=state.round + 1)


def tick_end_of_turn(state: CombatState) -> CombatState:
    """Count down the current combatant's timed effects and conditions.

    Durations drop by one; anything that reaches 0 is removed.
    Conditions without a duration are untouched.

    Raises:
        CombatError: If the state is not an active encounter.
    """
    state = _require_active(state)
    current = state.current_combatant
    if current is None:
        return state

    effects = [
        effect.model_copy(update={"duration": effect.duration - 1})
        for effect in current.effects
        if effect.duration - 1 > 0
    ]
    conditions: list[Condition] = []
    for condition in current.conditions:
        if condition.duration is None:
            conditions.append(condition)
        elif condition.duration - 1 > 0:
            conditions.append(condition.model_copy(update={"duration": condition.duration - 1}))

    expired = len(current.effects) - len(effects) + len(current.conditions) - len(conditions)
    if expired:
        logger.debug("Effects expired", combatant=current.name, expired=expired)

    return replace_combatant(
        state,
        _rebuild_combatant(current, effects=effects, conditions=conditions),
    )


def should_combat_end(state: CombatState) -> CombatEndCheck:
    """Decide whether the encounter is over.

    Victory when no monster is active and at least one player is;
    defeat when no player is active. NPCs never count.
    """
    active_players = [
        c for c in state.combatants if c.type == CombatantType.PLAYER and c.is_active
    ]
    active_monsters = [
        c for c in state.combatants if c.type == CombatantType.MONSTER and c.is_active
    ]

    if not active_monsters and active_players:
        return CombatEndCheck(end=True, outcome=CombatOutcome.VICTORY)
    if not active_players:
        return CombatEndCheck(end=True, outcome=CombatOutcome.DEFEAT)
    return CombatEndCheck(end=False)


# =============================================================================
# Lookups
# =============================================================================


def current_combatant(state: CombatState | None) -> Combatant | None:
    """Combatant whose turn it is, or None outside combat."""
    if state is None:
        return None
    return state.current_combatant


def is_player_turn(state: CombatState | None) -> bool:
    """Check whether a player is acting."""
    combatant = current_combatant(state)
    return combatant is not None and combatant.type == CombatantType.PLAYER


def get_combatant(state: CombatState, combatant_id: str) -> Combatant:
    """Look up a combatant by ID.

    Raises:
        NotFoundError: If no combatant has that ID.
    """
    combatant = state.find_combatant(combatant_id)
    if combatant is None:
        raise NotFoundError(
            f"Combatant not found: {combatant_id}",
            resource="combatant",
            resource_id=combatant_id,
        )
    return combatant


def replace_combatant(state: CombatState, combatant: Combatant) -> CombatState:
    """Return a state with one combatant record swapped for a new one."""
    get_combatant(state, combatant.id)
    combatants = [combatant if c.id == combatant.id else c for c in state.combatants]
    return _rebuild_state(state, combatants=combatants)


# =============================================================================
# Combatant Mutations
# =============================================================================


def apply_damage(combatant: Combatant, amount: int) -> Combatant:
    """Reduce HP, never below 0.

    A combatant dropped to 0 becomes inactive; players also gain the
    unconscious condition. Zero-HP override conditions suppress both.
    """
    if amount < 0:
        raise InvalidInputError(
            "Damage must be non-negative",
            field_name="value",
            invalid_value=amount,
        )

    current_hp = max(0, combatant.current_hp - amount)
    conditions = list(combatant.conditions)
    is_active = combatant.is_active

    if current_hp == 0 and not combatant.has_zero_hp_override:
        is_active = False
        if combatant.type == CombatantType.PLAYER and not combatant.has_condition(
            UNCONSCIOUS_CONDITION
        ):
            conditions.append(Condition(name=UNCONSCIOUS_CONDITION, source="damage"))

    return _rebuild_combatant(
        combatant,
        current_hp=current_hp,
        conditions=conditions,
        is_active=is_active,
    )


def apply_healing(combatant: Combatant, amount: int) -> Combatant:
    """Restore HP up to max_hp.

    A combatant healed up from 0 becomes active again and loses the
    unconscious condition.
    """
    if amount < 0:
        raise InvalidInputError(
            "Healing must be non-negative",
            field_name="value",
            invalid_value=amount,
        )

    was_down = combatant.current_hp == 0
    current_hp = min(combatant.max_hp, combatant.current_hp + amount)
    conditions = list(combatant.conditions)
    is_active = combatant.is_active

    if was_down and current_hp > 0:
        is_active = True
        conditions = [c for c in conditions if c.name != UNCONSCIOUS_CONDITION]

    return _rebuild_combatant(
        combatant,
        current_hp=current_hp,
        conditions=conditions,
        is_active=is_active,
    )


def add_condition(combatant: Combatant, condition: Condition) -> Combatant:
    """Add a condition unless one with the same name is present."""
    if combatant.has_condition(condition.name):
        return combatant
    return _rebuild_combatant(combatant, conditions=[*combatant.conditions, condition])


def remove_condition(combatant: Combatant, name: str) -> Combatant:
    """Remove every condition with the given name."""
    return _rebuild_combatant(
        combatant,
        conditions=[c for c in combatant.conditions if c.name != name],
    )


__all__ = [
    "CombatEndCheck",
    "start_combat",
    "add_combatant",
    "advance_turn",
    "tick_end_of_turn",
    "should_combat_end",
    "current_combatant",
    "is_player_turn",
    "get_combatant",
    "replace_combatant",
    "apply_damage",
    "apply_healing",
    "add_condition",
    "remove_condition",
]
