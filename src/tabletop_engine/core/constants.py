"""Application-wide constants for the tabletop session engine.

This module defines constants used throughout the application,
including dice bounds, state-change vocabularies and combat defaults.
"""

from __future__ import annotations

import re

# =============================================================================
# Dice Notation
# =============================================================================

DICE_NOTATION_PATTERN = re.compile(r"^([1-9]\d*)d([1-9]\d*)([+-]\d+)?$", re.IGNORECASE)
"""Accepted dice notation: <count>d<sides>[+|-<modifier>], e.g. '2d6+3'."""

PLAIN_DICE_PATTERN = re.compile(r"^([1-9]\d*)d([1-9]\d*)$", re.IGNORECASE)
"""Dice notation without a modifier, e.g. '1d20'."""

MIN_DICE_COUNT = 1
MAX_DICE_COUNT = 100
MIN_DICE_SIDES = 2
MAX_DICE_SIDES = 100
MAX_DICE_MODIFIER = 100
"""Bounds applied after a notation matches the pattern."""

# =============================================================================
# Combat
# =============================================================================

DEFAULT_INITIATIVE_MODIFIER = 0
"""Initiative modifier used when a participant supplies none."""

ZERO_HP_OVERRIDE_CONDITIONS = frozenset({"undying"})
"""Conditions that keep a combatant active at 0 HP."""

UNCONSCIOUS_CONDITION = "unconscious"
"""Condition given to players dropped to 0 HP."""

# =============================================================================
# Session
# =============================================================================

INITIAL_SESSION_VERSION = 1
"""Version assigned to a freshly created session."""

UNKNOWN_NPC_NAME = "Unknown NPC"
"""Name used for narrator-introduced NPCs that arrive without one."""

DEFAULT_ROLL_REASON = "Roll"
"""Reason used for a roll request that arrives without one."""

MAX_SESSION_EVENTS = 200
"""Most recent session events kept on the session document."""


__all__ = [
    "DICE_NOTATION_PATTERN",
    "PLAIN_DICE_PATTERN",
    "MIN_DICE_COUNT",
    "MAX_DICE_COUNT",
    "MIN_DICE_SIDES",
    "MAX_DICE_SIDES",
    "MAX_DICE_MODIFIER",
    "DEFAULT_INITIATIVE_MODIFIER",
    "ZERO_HP_OVERRIDE_CONDITIONS",
    "UNCONSCIOUS_CONDITION",
    "INITIAL_SESSION_VERSION",
    "UNKNOWN_NPC_NAME",
    "DEFAULT_ROLL_REASON",
    "MAX_SESSION_EVENTS",
]
