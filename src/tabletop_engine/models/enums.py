"""Enumerations shared by the session, combat and narration models."""

from __future__ import annotations

from enum import StrEnum


class CombatantType(StrEnum):
    """Kinds of encounter participants."""

    PLAYER = "player"
    MONSTER = "monster"
    NPC = "npc"


class SessionStatus(StrEnum):
    """Lifecycle status of a play session."""

    ACTIVE = "active"
    PAUSED = "paused"
    ENDED = "ended"


class StateChangeKind(StrEnum):
    """Discrete mutations a state change can describe."""

    DAMAGE = "damage"
    HEAL = "heal"
    CONDITION_ADD = "condition_add"
    CONDITION_REMOVE = "condition_remove"
    MOVE = "move"
    INVENTORY = "inventory"
    CUSTOM = "custom"


class Disposition(StrEnum):
    """Attitude of an NPC towards the party."""

    FRIENDLY = "friendly"
    NEUTRAL = "neutral"
    HOSTILE = "hostile"


class CombatOutcome(StrEnum):
    """How an encounter ended."""

    VICTORY = "victory"
    DEFEAT = "defeat"
    RETREAT = "retreat"
    TRUCE = "truce"


class CombatActionType(StrEnum):
    """Combat actions a narrator may declare."""

    ATTACK = "attack"
    SPELL = "spell"
    ABILITY = "ability"
    MOVEMENT = "movement"
    END_TURN = "end_turn"


class TokenType(StrEnum):
    """Kinds of tokens on the battle map."""

    PLAYER = "player"
    NPC = "npc"
    MONSTER = "monster"
    OBJECT = "object"


class TerrainType(StrEnum):
    """Special terrain tiles on the battle map."""

    WALL = "wall"
    DIFFICULT = "difficult"
    WATER = "water"
    PIT = "pit"


class RollMode(StrEnum):
    """Where a dice result came from."""

    RNG = "rng"
    PLAYER_ENTERED = "player_entered"


class SessionEventType(StrEnum):
    """Entries in a session's event log."""

    COMBAT_START = "combat_start"
    COMBAT_END = "combat_end"
    TURN_START = "turn_start"
    TURN_END = "turn_end"
    SESSION_SAVE = "session_save"
    SESSION_RESUME = "session_resume"
    SESSION_END = "session_end"


class RollType(StrEnum):
    """d20 roll variants."""

    NORMAL = "normal"
    ADVANTAGE = "advantage"
    DISADVANTAGE = "disadvantage"


__all__ = [
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
]
