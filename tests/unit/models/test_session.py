"""Tests for session, map and combat schemas."""

from __future__ import annotations

import pytest
from conftest import make_combat_state, make_combatant
from pydantic import ValidationError

from tabletop_engine.models.combat import Combatant, CombatState, Condition, InitiativeEntry
from tabletop_engine.models.enums import CombatantType, SessionStatus, TokenType
from tabletop_engine.models.session import NPC, MapState, MapToken, Session, SessionPatch


class TestCombatant:
    """Tests for the Combatant health invariant."""

    def test_hp_clamped(self) -> None:
        """Test that HP is clamped into [0, max_hp]."""
        assert make_combatant("a", current_hp=25, max_hp=10).current_hp == 10
        assert make_combatant("a", current_hp=-4).current_hp == 0

    def test_zero_hp_inactive(self) -> None:
        combatant = make_combatant("a", current_hp=0, is_active=True)

        assert combatant.is_active is False

    def test_zero_hp_override(self) -> None:
        """Test that the undying condition keeps a combatant active."""
        combatant = make_combatant("a", current_hp=0, conditions=[Condition(name="undying")])

        assert combatant.is_active is True
        assert combatant.has_zero_hp_override is True

    def test_name_length(self) -> None:
        with pytest.raises(ValidationError):
            make_combatant("a", name="x" * 101)

    def test_armor_class_bounds(self) -> None:
        with pytest.raises(ValidationError):
            make_combatant("a", armor_class=51)

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Combatant(id="a", type=CombatantType.PLAYER, name="A", current_hp=1, max_hp=1, speed=30)


class TestCombatState:
    """Tests for the turn index invariant."""

    def test_turn_index_out_of_range(self) -> None:
        with pytest.raises(ValidationError):
            make_combat_state([make_combatant("a")], turn_index=1)

    def test_active_requires_order(self) -> None:
        with pytest.raises(ValidationError):
            CombatState(active=True)

    def test_entry_without_combatant(self) -> None:
        """Test that every initiative entry needs a combatant record."""
        with pytest.raises(ValidationError):
            CombatState(
                initiative_order=[
                    InitiativeEntry(id="ghost", type=CombatantType.MONSTER, name="Ghost", initiative=3)
                ],
                combatants=[],
            )

    def test_inactive_state_unchecked(self) -> None:
        state = CombatState(active=False, turn_index=4)

        assert state.current_entry is None
        assert state.current_combatant is None

    def test_current_combatant(self, three_way_combat: CombatState) -> None:
        state = three_way_combat.model_copy(update={"turn_index": 1})

        assert state.current_combatant is not None
        assert state.current_combatant.id == "b"


class TestMapState:
    """Tests for map bounds."""

    def test_token_outside_grid(self) -> None:
        with pytest.raises(ValidationError):
            MapState(grid_width=5, grid_height=5, tokens=[MapToken(id="t", type=TokenType.OBJECT, x=5, y=0)])

    def test_grid_bounds(self) -> None:
        with pytest.raises(ValidationError):
            MapState(grid_width=201)

    def test_contains(self, battle_map: MapState) -> None:
        assert battle_map.contains(9, 9)
        assert not battle_map.contains(10, 0)
        assert battle_map.find_token("goblin") is not None
        assert battle_map.find_token("dragon") is None


class TestSession:
    """Tests for the Session document."""

    def test_defaults(self) -> None:
        session = Session(id="s", campaign_id="c")

        assert session.version == 1
        assert session.status == SessionStatus.ACTIVE
        assert session.ended_at is None
        assert session.started_at.tzinfo is not None
        assert session.in_combat is False

    def test_json_round_trip(self, combat_session: Session) -> None:
        """Test that a full session survives JSON serialization."""
        restored = Session.model_validate_json(combat_session.model_dump_json())

        assert restored == combat_session
        assert restored.in_combat is True


class TestSessionPatch:
    """Tests for partial updates."""

    def test_unset_versus_none(self) -> None:
        """Test that an explicit None is a change and an omitted field is not."""
        assert SessionPatch().changes() == {}
        assert SessionPatch().is_empty
        assert SessionPatch(combat_state=None).changes() == {"combat_state": None}

    @pytest.mark.parametrize("field_name", ["status", "active_npcs"])
    def test_required_fields_not_clearable(self, field_name: str) -> None:
        with pytest.raises(ValidationError):
            SessionPatch(**{field_name: None})

    def test_merge_prefers_other(self) -> None:
        first = SessionPatch(current_location="Cave", status=SessionStatus.PAUSED)
        second = SessionPatch(current_location="Harbor", active_npcs=[NPC(id="n", name="Mara")])

        merged = first.merge(second)

        assert merged.current_location == "Harbor"
        assert merged.status == SessionStatus.PAUSED
        assert merged.model_fields_set == {"current_location", "status", "active_npcs"}
