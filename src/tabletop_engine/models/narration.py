"""Models for narration replies and the state changes they propose.

ProposedStateChange is shared by direct player actions and narrated
mutations. ValidatedResponse is what the narration validator hands to the
mutation applier after every field has been checked.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Annotated

from pydantic import BaseModel, ConfigDict, Field

from tabletop_engine.core.constants import DEFAULT_ROLL_REASON
from tabletop_engine.models.enums import CombatActionType, StateChangeKind
from tabletop_engine.models.session import NPC


if TYPE_CHECKING:
    from tabletop_engine.core.exceptions import InvalidInputError


class ProposedStateChange(BaseModel):
    """A single requested mutation of session state.

    Attributes:
        kind: What kind of mutation this is.
        target: Combatant or token ID the change applies to.
        value: Amount, condition name or "x,y" position depending on kind.
        description: Free-text description for the log.
        duration: Rounds for an added condition (None = indefinite).
        source: What caused an added condition.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: StateChangeKind
    target: str | None = None
    value: int | str | None = None
    description: str = ""
    duration: Annotated[int, Field(ge=0)] | None = None
    source: str | None = None


class RollRequest(BaseModel):
    """A dice roll the narrator asks the players to make."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    dice: str = Field(min_length=1)
    reason: str = DEFAULT_ROLL_REASON
    dc: int | None = None


class RuleCitation(BaseModel):
    """A rules reference attached to a narration reply."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    rule_id: str = ""
    title: str = ""
    source: str = ""
    excerpt: str | None = None


class CombatAction(BaseModel):
    """A combat action the narrator declared."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: CombatActionType
    target: str | None = None
    damage: str | None = None


@dataclass
class ValidatedResponse:
    """A narration reply after per-field validation.

    Attributes:
        narrative: Story text shown to the players. Never empty.
        mechanics: Optional rules explanation.
        state_changes: Typed mutations to apply.
        requires_roll: Roll the players must make next.
        rule_citations: Rules references.
        combat_action: Declared combat action.
        new_location: Location the party moved to.
        new_npcs: NPCs introduced by the reply.
        field_errors: Hard failures for individual fields; those fields
            are omitted from the response.
        structured: Whether the reply contained a usable JSON block.
    """

    narrative: str
    mechanics: str | None = None
    state_changes: list[ProposedStateChange] = field(default_factory=list)
    requires_roll: RollRequest | None = None
    rule_citations: list[RuleCitation] = field(default_factory=list)
    combat_action: CombatAction | None = None
    new_location: str | None = None
    new_npcs: list[NPC] = field(default_factory=list)
    field_errors: list[InvalidInputError] = field(default_factory=list)
    structured: bool = False

    @property
    def has_errors(self) -> bool:
        """Check whether any field failed validation."""
        return bool(self.field_errors)


__all__ = [
    "ProposedStateChange",
    "RollRequest",
    "RuleCitation",
    "CombatAction",
    "ValidatedResponse",
]
