"""Pydantic V2 schemas for combat management.

This module defines the data models for combat encounters: conditions,
timed effects, combatants, initiative entries and the aggregate combat
state persisted inside a session.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, model_validator

from tabletop_engine.core.constants import (
    DEFAULT_INITIATIVE_MODIFIER,
    ZERO_HP_OVERRIDE_CONDITIONS,
)
from tabletop_engine.models.enums import CombatantType


class Condition(BaseModel):
    """A named condition on a combatant.

    Attributes:
        name: Condition name (e.g. 'poisoned').
        duration: Rounds remaining, None for indefinite.
        source: What applied the condition.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1, description="Condition name")
    duration: Annotated[int, Field(ge=0)] | None = Field(
        default=None,
        description="Rounds remaining (None = indefinite)",
    )
    source: str | None = Field(default=None, description="Origin of the condition")


class ActiveEffect(BaseModel):
    """A timed effect on a combatant.

    Attributes:
        name: Effect name.
        description: What the effect does.
        duration: Rounds remaining.
        source: What applied the effect.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1, description="Effect name")
    description: str = Field(default="", description="Effect description")
    duration: Annotated[int, Field(ge=0)] = Field(description="Rounds remaining")
    source: str = Field(default="", description="Origin of the effect")


class Combatant(BaseModel):
    """Entity participating in combat.

    Health is clamped to [0, max_hp] on construction, and a combatant at
    0 HP is never active unless it carries a zero-HP override condition.
    Engine code never mutates a Combatant in place; it builds a new one
    through ``model_validate`` so the invariant is re-applied.

    Attributes:
        id: Combatant identifier (shared with its initiative entry).
        type: Player, monster or NPC.
        name: Display name.
        initiative: Rolled initiative value.
        current_hp: Current hit points.
        max_hp: Maximum hit points.
        armor_class: Armor class.
        conditions: Named conditions.
        effects: Timed effects.
        is_active: Whether the combatant may act.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1, description="Combatant ID")
    type: CombatantType = Field(description="Combatant type")
    name: str = Field(min_length=1, max_length=100, description="Display name")
    initiative: int = Field(default=0, description="Initiative value")
    current_hp: int = Field(description="Current HP")
    max_hp: Annotated[int, Field(ge=1, description="Maximum HP")]
    armor_class: Annotated[int, Field(ge=0, le=50, description="Armor class")] = 10
    conditions: list[Condition] = Field(default_factory=list, description="Conditions")
    effects: list[ActiveEffect] = Field(default_factory=list, description="Timed effects")
    is_active: bool = Field(default=True, description="Eligible to act")

    @model_validator(mode="after")
    def enforce_health_invariant(self) -> "Combatant":
        """Clamp HP and deactivate combatants at 0 HP."""
        self.current_hp = max(0, min(self.current_hp, self.max_hp))
        if self.current_hp == 0 and not self.has_zero_hp_override:
            self.is_active = False
        return self

    @property
    def has_zero_hp_override(self) -> bool:
        """Check for a condition that keeps the combatant up at 0 HP."""
        return any(c.name in ZERO_HP_OVERRIDE_CONDITIONS for c in self.conditions)

    def has_condition(self, name: str) -> bool:
        """Check whether a condition with this name is present."""
        return any(c.name == name for c in self.conditions)


class InitiativeEntry(BaseModel):
    """An entry in the initiative order.

    Created once per combatant at encounter start and never changed.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1, description="Combatant ID")
    type: CombatantType = Field(description="Combatant type")
    name: str = Field(min_length=1, description="Display name")
    initiative: int = Field(description="Rolled initiative value")


class ParticipantInput(BaseModel):
    """A participant supplied when combat starts or a combatant joins.

    Attributes:
        initiative_modifier: Added to the initiative roll.
        initiative: Pre-computed initiative; skips the roll when set.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=100)
    type: CombatantType
    current_hp: int
    max_hp: Annotated[int, Field(ge=1)]
    armor_class: Annotated[int, Field(ge=0, le=50)] = 10
    initiative_modifier: int = DEFAULT_INITIATIVE_MODIFIER
    initiative: int | None = None


class CombatState(BaseModel):
    """Current state of a combat encounter.

    Only the initiative order and the turn index are stored; the current
    combatant is always looked up from them.

    Attributes:
        active: Whether the encounter is running.
        round: Current round (starts at 1).
        turn_index: Index into initiative_order of the acting combatant.
        initiative_order: Entries sorted by descending initiative.
        combatants: Current combatant records.
    """

    model_config = ConfigDict(extra="forbid")

    active: bool = Field(default=True, description="Encounter running")
    round: Annotated[int, Field(ge=1, description="Current round")] = 1
    turn_index: Annotated[int, Field(ge=0, description="Current turn index")] = 0
    initiative_order: list[InitiativeEntry] = Field(default_factory=list)
    combatants: list[Combatant] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_turn_index(self) -> "CombatState":
        """Ensure an active encounter points at a real initiative entry."""
        if not self.active:
            return self
        if not self.initiative_order:
            raise ValueError("active combat requires a non-empty initiative order")
        if self.turn_index >= len(self.initiative_order):
            raise ValueError(
                f"turn_index {self.turn_index} out of range for "
                f"{len(self.initiative_order)} initiative entries"
            )
        known = {c.id for c in self.combatants}
        missing = [e.id for e in self.initiative_order if e.id not in known]
        if missing:
            raise ValueError(f"initiative entries without combatants: {missing}")
        return self

    @property
    def current_entry(self) -> InitiativeEntry | None:
        """Initiative entry whose turn it is."""
        if not self.active or not self.initiative_order:
            return None
        return self.initiative_order[self.turn_index]

    @property
    def current_combatant(self) -> Combatant | None:
        """Combatant whose turn it is."""
        entry = self.current_entry
        if entry is None:
            return None
        return self.find_combatant(entry.id)

    def find_combatant(self, combatant_id: str) -> Combatant | None:
        """Look up a combatant by ID."""
        for combatant in self.combatants:
            if combatant.id == combatant_id:
                return combatant
        return None


__all__ = [
    "Condition",
    "ActiveEffect",
    "Combatant",
    "InitiativeEntry",
    "ParticipantInput",
    "CombatState",
]
