"""Pydantic models for sessions, combat and narration."""

from __future__ import annotations

from tabletop_engine.models.combat import (
    ActiveEffect,
    Combatant,
    CombatState,
    Condition,
    InitiativeEntry,
    ParticipantInput,
)
from tabletop_engine.models.enums import (
    CombatActionType,
    CombatantType,
    CombatOutcome,
    Disposition,
    RollMode,
    RollType,
    SessionEventType,
    SessionStatus,
    StateChangeKind,
    TerrainType,
    TokenType,
)
from tabletop_engine.models.narration import (
    CombatAction,
    ProposedStateChange,
    RollRequest,
    RuleCitation,
    ValidatedResponse,
)
from tabletop_engine.models.session import (
    NPC,
    MapState,
    MapToken,
    Session,
    SessionEvent,
    SessionPatch,
    TerrainTile,
    utc_now,
)


__all__ = [
    # Enums
    "CombatantType",
    "SessionStatus",
    "StateChangeKind",
    "Disposition",
    "CombatOutcome",
    "CombatActionType",
    "TokenType",
    "TerrainType",
    "RollMode",
    "RollType",
    "SessionEventType",
    # Combat
    "Condition",
    "ActiveEffect",
    "Combatant",
    "InitiativeEntry",
    "ParticipantInput",
    "CombatState",
    # Session
    "NPC",
    "MapToken",
    "TerrainTile",
    "MapState",
    "Session",
    "SessionEvent",
    "SessionPatch",
    "utc_now",
    # Narration
    "ProposedStateChange",
    "RollRequest",
    "RuleCitation",
    "CombatAction",
    "ValidatedResponse",
]
