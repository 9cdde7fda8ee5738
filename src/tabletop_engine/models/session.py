"""Pydantic V2 schemas for play sessions.

A Session is the unit of shared state: narrative position, NPCs, the
battle map and the optional combat state. Every committed write bumps
``version`` by one; writers describe their changes as a SessionPatch.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from tabletop_engine.core.constants import INITIAL_SESSION_VERSION, MAX_SESSION_EVENTS
from tabletop_engine.models.combat import CombatState
from tabletop_engine.models.enums import (
    Disposition,
    SessionEventType,
    SessionStatus,
    TerrainType,
    TokenType,
)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


# =============================================================================
# NPCs and Map
# =============================================================================


class NPC(BaseModel):
    """A non-player character present in the scene."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1, description="NPC ID")
    name: str = Field(min_length=1, description="NPC name")
    description: str | None = Field(default=None, description="Short description")
    disposition: Disposition | None = Field(default=None, description="Attitude to the party")


class MapToken(BaseModel):
    """A token placed on the battle map grid."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    type: TokenType
    x: Annotated[int, Field(ge=0)]
    y: Annotated[int, Field(ge=0)]
    label: str = ""
    color: str | None = None


class TerrainTile(BaseModel):
    """A special terrain cell."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    x: Annotated[int, Field(ge=0)]
    y: Annotated[int, Field(ge=0)]
    type: TerrainType


class MapState(BaseModel):
    """Battle map grid with tokens and terrain.

    Attributes:
        grid_width: Number of columns.
        grid_height: Number of rows.
        tokens: Tokens on the grid.
        terrain: Special terrain cells.
    """

    model_config = ConfigDict(extra="forbid")

    grid_width: Annotated[int, Field(ge=1, le=200)] = 20
    grid_height: Annotated[int, Field(ge=1, le=200)] = 20
    tokens: list[MapToken] = Field(default_factory=list)
    terrain: list[TerrainTile] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_positions(self) -> "MapState":
        """Ensure every token and terrain tile lies inside the grid."""
        for item in [*self.tokens, *self.terrain]:
            if not self.contains(item.x, item.y):
                raise ValueError(
                    f"position ({item.x}, {item.y}) outside "
                    f"{self.grid_width}x{self.grid_height} grid"
                )
        return self

    def contains(self, x: int, y: int) -> bool:
        """Check whether a coordinate lies on the grid."""
        return 0 <= x < self.grid_width and 0 <= y < self.grid_height

    def find_token(self, token_id: str) -> MapToken | None:
        """Look up a token by ID."""
        for token in self.tokens:
            if token.id == token_id:
                return token
        return None


# =============================================================================
# Session
# =============================================================================


class SessionEvent(BaseModel):
    """A timestamped entry in the session log."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: SessionEventType
    content: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)


class Session(BaseModel):
    """Shared state of one play session.

    Attributes:
        id: Session identifier.
        campaign_id: Campaign the session belongs to.
        name: Optional display name.
        status: Lifecycle status.
        version: Optimistic-concurrency version, starts at 1.
        narrative_summary: Running summary of the story so far.
        current_location: Where the party currently is.
        active_npcs: NPCs present in the scene.
        combat_state: Combat encounter, None outside combat.
        map_state: Battle map, None when no map is in use.
        events: Most recent combat and lifecycle events, oldest first.
        started_at: Creation time.
        ended_at: Set when the session ends.
        last_activity: Time of the last committed write.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1, description="Session ID")
    campaign_id: str = Field(min_length=1, description="Campaign ID")
    name: str | None = Field(default=None, description="Display name")
    status: SessionStatus = Field(default=SessionStatus.ACTIVE)
    version: Annotated[int, Field(ge=1)] = INITIAL_SESSION_VERSION
    narrative_summary: str | None = None
    current_location: str | None = None
    active_npcs: list[NPC] = Field(default_factory=list)
    combat_state: CombatState | None = None
    map_state: MapState | None = None
    events: list[SessionEvent] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utc_now)
    ended_at: datetime | None = None
    last_activity: datetime = Field(default_factory=utc_now)

    @property
    def in_combat(self) -> bool:
        """Check whether an encounter is running."""
        return self.combat_state is not None and self.combat_state.active

    def append_events(self, *events: SessionEvent) -> list[SessionEvent]:
        """Event log with ``events`` added, keeping only the newest entries."""
        return [*self.events, *events][-MAX_SESSION_EVENTS:]


class SessionPatch(BaseModel):
    """A partial update to a Session.

    Only fields that were explicitly provided are applied, so
    ``SessionPatch(combat_state=None)`` clears combat while
    ``SessionPatch()`` leaves it alone.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    status: SessionStatus | None = None
    narrative_summary: str | None = None
    current_location: str | None = None
    active_npcs: list[NPC] | None = None
    combat_state: CombatState | None = None
    map_state: MapState | None = None
    events: list[SessionEvent] | None = None

    @model_validator(mode="after")
    def reject_null_required(self) -> "SessionPatch":
        """Status, NPCs and events may be omitted but not cleared."""
        for field_name in ("status", "active_npcs", "events"):
            if field_name in self.model_fields_set and getattr(self, field_name) is None:
                raise ValueError(f"{field_name} cannot be set to None")
        return self

    def changes(self) -> dict[str, Any]:
        """Explicitly provided fields, as model values."""
        return {name: getattr(self, name) for name in self.model_fields_set}

    def merge(self, other: SessionPatch) -> SessionPatch:
        """Combine two patches; fields set on ``other`` win."""
        return SessionPatch(**{**self.changes(), **other.changes()})

    @property
    def is_empty(self) -> bool:
        """Check whether the patch changes nothing."""
        return not self.model_fields_set


__all__ = [
    "utc_now",
    "NPC",
    "MapToken",
    "TerrainTile",
    "MapState",
    "SessionEvent",
    "Session",
    "SessionPatch",
]
