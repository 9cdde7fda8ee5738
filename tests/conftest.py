"""Pytest configuration and shared fixtures.

This module provides common fixtures and configuration for all tests
in the tabletop engine test suite.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from tabletop_engine.core.config import SessionSettings, Settings
from tabletop_engine.engine.dice import DiceRoller
from tabletop_engine.engine.game_service import GameService
from tabletop_engine.engine.mutations import MutationApplier
from tabletop_engine.engine.narration import NarrationValidator
from tabletop_engine.models.combat import Combatant, CombatState, InitiativeEntry, ParticipantInput
from tabletop_engine.models.enums import CombatantType, TokenType
from tabletop_engine.models.session import MapState, MapToken, Session
from tabletop_engine.storage.memory import InMemorySessionStore
from tabletop_engine.storage.repository import SessionRepository


if TYPE_CHECKING:
    from collections.abc import Generator


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Reset the settings cache before and after each test."""
    from tabletop_engine.core.config import clear_settings_cache

    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def mock_env_vars(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set up mock environment variables for testing.

    Returns:
        Dictionary of environment variables that were set.
    """
    env_vars = {
        "TABLETOP_DEBUG": "true",
        "TABLETOP_LOG_LEVEL": "DEBUG",
        "TABLETOP_SESSION_MAX_WRITE_RETRIES": "7",
        "TABLETOP_STORAGE_BACKEND": "memory",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with no backoff between write retries."""
    return Settings(session=SessionSettings(retry_wait_min=0.0, retry_wait_max=0.0))


# =============================================================================
# Combat Fixtures
# =============================================================================


def make_combatant(
    combatant_id: str,
    combatant_type: CombatantType = CombatantType.PLAYER,
    *,
    initiative: int = 10,
    current_hp: int = 10,
    max_hp: int = 10,
    **extra: Any,
) -> Combatant:
    """Build a combatant with sensible defaults."""
    return Combatant(
        id=combatant_id,
        type=combatant_type,
        name=extra.pop("name", combatant_id.upper()),
        initiative=initiative,
        current_hp=current_hp,
        max_hp=max_hp,
        **extra,
    )


def make_combat_state(
    combatants: list[Combatant],
    *,
    turn_index: int = 0,
    round_number: int = 1,
) -> CombatState:
    """Build an active state whose order follows descending initiative."""
    ordered = sorted(combatants, key=lambda c: c.initiative, reverse=True)
    return CombatState(
        active=True,
        round=round_number,
        turn_index=turn_index,
        initiative_order=[
            InitiativeEntry(id=c.id, type=c.type, name=c.name, initiative=c.initiative)
            for c in ordered
        ],
        combatants=combatants,
    )


@pytest.fixture
def three_way_combat() -> CombatState:
    """A (20), B (15) and C (10), all players, at round 1 turn 0."""
    return make_combat_state(
        [
            make_combatant("a", initiative=20),
            make_combatant("b", initiative=15),
            make_combatant("c", initiative=10),
        ]
    )


@pytest.fixture
def skirmish() -> CombatState:
    """A fighter against a goblin, with an NPC bystander."""
    return make_combat_state(
        [
            make_combatant("fighter", CombatantType.PLAYER, initiative=15, current_hp=20, max_hp=20),
            make_combatant("goblin", CombatantType.MONSTER, initiative=12, current_hp=7, max_hp=7),
            make_combatant("merchant", CombatantType.NPC, initiative=5, current_hp=4, max_hp=4),
        ]
    )


@pytest.fixture
def participants() -> list[ParticipantInput]:
    """Participants with fixed initiative for deterministic ordering."""
    return [
        ParticipantInput(
            id="fighter", name="Fighter", type=CombatantType.PLAYER,
            current_hp=20, max_hp=20, armor_class=18, initiative=15,
        ),
        ParticipantInput(
            id="goblin", name="Goblin", type=CombatantType.MONSTER,
            current_hp=7, max_hp=7, armor_class=15, initiative=12,
        ),
    ]


@pytest.fixture
def battle_map() -> MapState:
    """A 10x10 map with the fighter and goblin tokens."""
    return MapState(
        grid_width=10,
        grid_height=10,
        tokens=[
            MapToken(id="fighter", type=TokenType.PLAYER, x=1, y=1, label="Fighter"),
            MapToken(id="goblin", type=TokenType.MONSTER, x=5, y=5, label="Goblin"),
        ],
    )


@pytest.fixture
def combat_session(skirmish: CombatState, battle_map: MapState) -> Session:
    """A session in the middle of the skirmish."""
    return Session(
        id="session-1",
        campaign_id="campaign-1",
        combat_state=skirmish,
        map_state=battle_map,
    )


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def dice_roller() -> DiceRoller:
    """Create a DiceRoller with a fixed seed for reproducible tests.

    Returns:
        DiceRoller instance with fixed seed.
    """
    return DiceRoller(seed=42)


@pytest.fixture
def validator() -> NarrationValidator:
    return NarrationValidator()


@pytest.fixture
def applier() -> MutationApplier:
    return MutationApplier()


@pytest.fixture
def repository() -> SessionRepository:
    """Repository over a fresh in-memory store."""
    return SessionRepository(InMemorySessionStore())


@pytest.fixture
def game_service(
    repository: SessionRepository,
    dice_roller: DiceRoller,
    validator: NarrationValidator,
    applier: MutationApplier,
    fast_settings: Settings,
) -> GameService:
    """GameService over the in-memory repository."""
    return GameService(repository, dice_roller, validator, applier, settings=fast_settings)
