"""Tests for narration reply validation."""

from __future__ import annotations

import json
import uuid

import pytest

from tabletop_engine.core.config import NarrationSettings
from tabletop_engine.core.exceptions import DiceRollError, MissingNarrativeError
from tabletop_engine.engine.narration import (
    NarrationValidator,
    extract_json_block,
    extract_narrative,
    format_for_display,
    has_state_changes,
    requires_roll,
)
from tabletop_engine.models.enums import CombatActionType, Disposition, StateChangeKind
from tabletop_engine.models.narration import RuleCitation, ValidatedResponse


def _reply(payload: dict, prefix: str = "The DM considers.\n") -> str:
    return f"{prefix}```json\n{json.dumps(payload)}\n```"


class TestExtractJsonBlock:
    """Tests for locating the embedded object."""

    def test_no_braces(self) -> None:
        assert extract_json_block("Just a story.") is None

    def test_nested_object(self) -> None:
        """Test that nested braces are balanced."""
        text = 'before {"a": {"b": 1}} after {"c": 2}'

        assert extract_json_block(text) == '{"a": {"b": 1}}'

    def test_braces_inside_strings(self) -> None:
        """Test that braces in string literals do not affect balance."""
        text = 'x {"narrative": "a } and { b", "n": "\\"}"} y'

        block = extract_json_block(text)

        assert block is not None
        assert json.loads(block)["narrative"] == "a } and { b"

    def test_unclosed_first_brace(self) -> None:
        """Test that an unclosed opening brace means no block."""
        assert extract_json_block('oops { "narrative": "cut off') is None


class TestParse:
    """Tests for NarrationValidator.parse."""

    def test_plain_text_is_narrative(self, validator: NarrationValidator) -> None:
        """Test that a reply without JSON becomes narrative only."""
        response = validator.parse("  The door creaks open.  ")

        assert response.narrative == "The door creaks open."
        assert response.structured is False
        assert response.state_changes == []
        assert response.requires_roll is None

    def test_full_structured_reply(self, validator: NarrationValidator) -> None:
        """Test a reply using every field."""
        response = validator.parse(
            _reply(
                {
                    "narrative": "The goblin lunges!",
                    "mechanics": "Attack roll vs AC 15",
                    "state_changes": [
                        {"type": "damage", "target": "fighter", "value": 4, "description": "Scimitar"},
                    ],
                    "requires_roll": {"dice": "2d6+3", "reason": "Damage", "dc": 12},
                    "rule_citations": [{"rule_id": "r1", "title": "Attack Rolls", "source": "SRD"}],
                    "combat_action": {"type": "attack", "target": "fighter", "damage": "1d6+2"},
                    "new_location": "Goblin Cave",
                    "new_npcs": [{"id": "npc-1", "name": "Grik", "disposition": "hostile"}],
                }
            )
        )

        assert response.structured is True
        assert response.narrative == "The goblin lunges!"
        assert response.mechanics == "Attack roll vs AC 15"
        assert response.state_changes[0].kind == StateChangeKind.DAMAGE
        assert response.state_changes[0].value == 4
        assert response.requires_roll is not None
        assert response.requires_roll.dice == "2d6+3"
        assert response.requires_roll.dc == 12
        assert response.rule_citations[0].title == "Attack Rolls"
        assert response.combat_action is not None
        assert response.combat_action.type == CombatActionType.ATTACK
        assert response.new_location == "Goblin Cave"
        assert response.new_npcs[0].disposition == Disposition.HOSTILE
        assert response.field_errors == []

    def test_invalid_dice_reports_field_error(self, validator: NarrationValidator) -> None:
        """Test that bad dice notation fails that field only."""
        response = validator.parse(
            _reply({"narrative": "Roll for it.", "requires_roll": {"dice": "2dsix"}})
        )

        assert response.narrative == "Roll for it."
        assert response.requires_roll is None
        assert response.has_errors
        error = response.field_errors[0]
        assert isinstance(error, DiceRollError)
        assert error.field_name == "requires_roll.dice"

    @pytest.mark.parametrize("dice", ["0d6", "1d0", "0d0"])
    def test_zero_dice_rejected(self, validator: NarrationValidator, dice: str) -> None:
        """Test that a roll request for zero dice or zero sides fails."""
        response = validator.parse(
            json.dumps({"narrative": "Roll.", "requires_roll": {"dice": dice}})
        )

        assert response.requires_roll is None
        assert response.field_errors[0].field_name == "requires_roll.dice"

    def test_out_of_range_dice_rejected(self, validator: NarrationValidator) -> None:
        response = validator.parse(
            json.dumps({"narrative": "Roll.", "requires_roll": {"dice": "500d6"}})
        )

        assert response.requires_roll is None
        assert isinstance(response.field_errors[0], DiceRollError)

    def test_deeply_nested_json_falls_back(self, validator: NarrationValidator) -> None:
        """Test that JSON nested too deeply to decode is treated as narrative."""
        raw = "The cave rumbles. " + '{"a":' * 5000 + "1" + "}" * 5000

        response = validator.parse(raw)

        assert response.structured is False
        assert response.narrative.startswith("The cave rumbles.")

    def test_roll_reason_defaults(self, validator: NarrationValidator) -> None:
        response = validator.parse(_reply({"narrative": "n", "requires_roll": {"dice": "1d20"}}))

        assert response.requires_roll is not None
        assert response.requires_roll.reason == "Roll"

    def test_kind_alias_and_unknown_kind(self, validator: NarrationValidator) -> None:
        """Test that 'kind' is accepted and unknown kinds become custom."""
        response = validator.parse(
            _reply(
                {
                    "narrative": "n",
                    "state_changes": [
                        {"kind": "heal", "target": "fighter", "value": "3"},
                        {"type": "teleport", "target": "fighter", "value": "far away"},
                    ],
                }
            )
        )

        kinds = [c.kind for c in response.state_changes]
        assert kinds == [StateChangeKind.HEAL, StateChangeKind.CUSTOM]
        assert response.state_changes[0].value == 3

    def test_bad_amount_dropped(self, validator: NarrationValidator) -> None:
        """Test that damage without a usable amount is dropped."""
        response = validator.parse(
            _reply(
                {
                    "narrative": "n",
                    "state_changes": [
                        {"type": "damage", "target": "fighter", "value": -2},
                        {"type": "damage", "target": "fighter", "value": "lots"},
                        "not an object",
                        {"type": "condition_add", "target": "fighter", "value": "prone"},
                    ],
                }
            )
        )

        assert [c.kind for c in response.state_changes] == [StateChangeKind.CONDITION_ADD]
        assert response.field_errors == []

    def test_unknown_disposition_becomes_neutral(self, validator: NarrationValidator) -> None:
        """Test NPC defaults and disposition coercion."""
        response = validator.parse(
            _reply({"narrative": "n", "new_npcs": [{"disposition": "grumpy"}, {"name": "Ada"}]})
        )

        first, second = response.new_npcs
        assert first.name == "Unknown NPC"
        assert first.disposition == Disposition.NEUTRAL
        uuid.UUID(first.id)
        assert second.disposition is None

    def test_unknown_combat_action_dropped(self, validator: NarrationValidator) -> None:
        response = validator.parse(
            _reply({"narrative": "n", "combat_action": {"type": "dance"}})
        )

        assert response.combat_action is None
        assert response.field_errors == []

    def test_malformed_json_falls_back(self, validator: NarrationValidator) -> None:
        """Test that invalid JSON yields the raw text as narrative."""
        raw = "You swing. {narrative: oops}"

        response = validator.parse(raw)

        assert response.narrative == raw
        assert response.structured is False

    def test_missing_narrative_falls_back(self, validator: NarrationValidator) -> None:
        raw = 'Story {"a": 1} ends'

        response = validator.parse(raw)

        assert response.narrative == raw
        assert response.structured is False

    def test_empty_reply_raises(self, validator: NarrationValidator) -> None:
        """Test that an empty reply is an error."""
        with pytest.raises(MissingNarrativeError):
            validator.parse("   ")

    def test_truncation(self) -> None:
        """Test that long narratives are cut to the limit."""
        validator = NarrationValidator(max_response_chars=5)

        assert validator.parse("abcdefghij").narrative == "abcde"

    def test_truncation_keeps_state_changes(self) -> None:
        """Test that a long structured reply keeps its mechanics."""
        validator = NarrationValidator(max_response_chars=100)
        reply = _reply(
            {
                "narrative": "The battle rages. " * 20,
                "state_changes": [{"type": "damage", "target": "goblin", "value": 4}],
                "new_location": "Ravine",
            },
            prefix="x" * 200,
        )

        response = validator.parse(reply)

        assert len(response.narrative) == 100
        assert response.structured is True
        assert response.state_changes[0].value == 4
        assert response.new_location == "Ravine"

    def test_from_settings(self) -> None:
        validator = NarrationValidator.from_settings(NarrationSettings(max_response_chars=250))

        assert validator.max_response_chars == 250

    def test_require_raises_first_error(self, validator: NarrationValidator) -> None:
        """Test strict validation."""
        with pytest.raises(DiceRollError):
            validator.require(_reply({"narrative": "n", "requires_roll": {"dice": "d20"}}))

    def test_require_passes_clean_reply(self, validator: NarrationValidator) -> None:
        assert validator.require("Quiet night.").narrative == "Quiet night."


class TestHelpers:
    """Tests for response helpers."""

    def test_extract_narrative(self) -> None:
        assert extract_narrative(_reply({"narrative": "Only this."})) == "Only this."

    def test_flags(self, validator: NarrationValidator) -> None:
        response = validator.parse(
            _reply(
                {
                    "narrative": "n",
                    "state_changes": [{"type": "custom", "description": "Door opens"}],
                    "requires_roll": {"dice": "1d20"},
                }
            )
        )

        assert requires_roll(response) is True
        assert has_state_changes(response) is True
        assert requires_roll(ValidatedResponse(narrative="n")) is False

    def test_format_for_display(self) -> None:
        """Test markdown rendering of mechanics and citations."""
        response = ValidatedResponse(
            narrative="The arrow flies.",
            mechanics="Ranged attack",
            rule_citations=[RuleCitation(title="Ranged Attacks", source="SRD")],
        )

        assert format_for_display(response) == (
            "The arrow flies.\n\n---\n*Ranged attack*"
            "\n\n**Rule References:**\n- Ranged Attacks (SRD)"
        )

    def test_format_narrative_only(self) -> None:
        assert format_for_display(ValidatedResponse(narrative="Hi.")) == "Hi."
