"""Narration reply validation.

A narrator reply is untrusted free text that may embed a JSON object
describing mechanics. This module finds that object, validates each field
on its own and returns a ValidatedResponse the mutation applier can use.

Each field validator returns a FieldResult:

* accept: the (possibly normalized) value is kept;
* drop: the field is silently omitted;
* fail: the field is omitted and the error is reported in
  ``ValidatedResponse.field_errors``.

A reply without a usable JSON object is never an error: the whole text
becomes the narrative and nothing is mutated.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Generic, TypeVar

from tabletop_engine.core.config import NarrationSettings
from tabletop_engine.core.constants import DEFAULT_ROLL_REASON, UNKNOWN_NPC_NAME
from tabletop_engine.core.exceptions import (
    DiceRollError,
    InvalidInputError,
    MissingNarrativeError,
)
from tabletop_engine.core.logging import get_logger
from tabletop_engine.engine.dice import parse_notation
from tabletop_engine.models.enums import CombatActionType, Disposition, StateChangeKind
from tabletop_engine.models.narration import (
    CombatAction,
    ProposedStateChange,
    RollRequest,
    RuleCitation,
    ValidatedResponse,
)
from tabletop_engine.models.session import NPC


logger = get_logger(__name__)

T = TypeVar("T")

AMOUNT_KINDS = frozenset({StateChangeKind.DAMAGE, StateChangeKind.HEAL})


class FieldStatus(StrEnum):
    """Outcome of validating one field."""

    ACCEPT = "accept"
    DROP = "drop"
    FAIL = "fail"


@dataclass(frozen=True)
class FieldResult(Generic[T]):
    """Result of a per-field validator.

    Attributes:
        status: Accept, drop or fail.
        value: The accepted value.
        reason: Why the field was dropped.
        error: Why the field failed.
    """

    status: FieldStatus
    value: T | None = None
    reason: str | None = None
    error: InvalidInputError | None = None

    @classmethod
    def accept(cls, value: T) -> FieldResult[T]:
        return cls(status=FieldStatus.ACCEPT, value=value)

    @classmethod
    def drop(cls, reason: str) -> FieldResult[T]:
        return cls(status=FieldStatus.DROP, reason=reason)

    @classmethod
    def fail(cls, error: InvalidInputError) -> FieldResult[T]:
        return cls(status=FieldStatus.FAIL, error=error)


# =============================================================================
# JSON Block Extraction
# =============================================================================


def _scan_object(text: str, start: int) -> int | None:
    """Return the index just past the object opening at ``start``."""
    depth = 0
    in_string = False
    escaped = False

    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index + 1
    return None


def extract_json_block(text: str) -> str | None:
    """Find the first balanced ``{...}`` block in text.

    Braces inside JSON string literals are ignored. Returns None when
    there is no opening brace or the first one is never closed; any later
    brace sits inside that unclosed block.
    """
    start = text.find("{")
    if start == -1:
        return None
    end = _scan_object(text, start)
    if end is None:
        return None
    return text[start:end]


# =============================================================================
# Value Coercion
# =============================================================================


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _coerce_amount(value: Any) -> int | None:
    """Non-negative integer amount, accepting numeric strings."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float) and value.is_integer():
        return int(value) if value >= 0 else None
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.isdigit():
            return int(stripped)
    return None


def _coerce_value(value: Any) -> int | str | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, str)):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _coerce_duration(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if value >= 0 else None


# =============================================================================
# Validator
# =============================================================================


class NarrationValidator:
    """Turn narrator replies into ValidatedResponse objects.

    Example:
        >>> validator = NarrationValidator()
        >>> response = validator.parse('Text {"narrative": "You enter.", "new_location": "Cave"}')
        >>> response.new_location
        'Cave'
    """

    def __init__(self, *, max_response_chars: int | None = None) -> None:
        """Initialize the validator.

        Args:
            max_response_chars: Narratives longer than this are cut to
                this many characters once the reply has been parsed.
                None disables the limit.
        """
        self.max_response_chars = max_response_chars
        self._field_validators: dict[str, Callable[[Any], FieldResult[Any]]] = {
            "mechanics": self._validate_mechanics,
            "state_changes": self._validate_state_changes,
            "requires_roll": self._validate_requires_roll,
            "rule_citations": self._validate_rule_citations,
            "combat_action": self._validate_combat_action,
            "new_location": self._validate_new_location,
            "new_npcs": self._validate_new_npcs,
        }

    @classmethod
    def from_settings(cls, settings: NarrationSettings) -> NarrationValidator:
        """Build a validator using the configured reply limits."""
        return cls(max_response_chars=settings.max_response_chars)

    def parse(self, raw_text: str) -> ValidatedResponse:
        """Validate a narrator reply.

        Args:
            raw_text: The raw reply.

        Returns:
            ValidatedResponse. Unstructured or unusable replies come back
            as narrative-only responses with ``structured=False``.

        Raises:
            MissingNarrativeError: If the reply has no text at all.
        """
        text = raw_text or ""
        block = extract_json_block(text)
        if block is None:
            return self._narrative_only(text)

        try:
            data = json.loads(block)
        except (json.JSONDecodeError, RecursionError) as exc:
            logger.warning("Failed to parse narration JSON, treating as narrative", error=str(exc))
            return self._narrative_only(text)

        if not isinstance(data, dict):
            logger.warning("Narration JSON is not an object, treating as narrative")
            return self._narrative_only(text)

        try:
            narrative = self._require_narrative(data)
        except MissingNarrativeError as exc:
            logger.warning("Structured reply has no narrative, using raw text", error=exc.message)
            return self._narrative_only(text)

        return self._build_response(narrative, data)

    def require(self, raw_text: str) -> ValidatedResponse:
        """Validate a reply and raise on the first field failure.

        Raises:
            InvalidInputError: The first recorded field error.
            MissingNarrativeError: If the reply has no text at all.
        """
        response = self.parse(raw_text)
        if response.field_errors:
            raise response.field_errors[0]
        return response

    # -------------------------------------------------------------------------
    # Response assembly
    # -------------------------------------------------------------------------

    def _clip(self, narrative: str) -> str:
        limit = self.max_response_chars
        if limit is None or len(narrative) <= limit:
            return narrative
        logger.warning("Narrative truncated", length=len(narrative), limit=limit)
        return narrative[:limit]

    def _narrative_only(self, text: str) -> ValidatedResponse:
        narrative = text.strip()
        if not narrative:
            raise MissingNarrativeError("Narration reply is empty")
        return ValidatedResponse(narrative=self._clip(narrative), structured=False)

    @staticmethod
    def _require_narrative(data: dict[str, Any]) -> str:
        narrative = data.get("narrative")
        if not isinstance(narrative, str) or not narrative.strip():
            raise MissingNarrativeError(
                "Narration reply must include narrative text",
                details={"keys": sorted(data)},
            )
        return narrative

    def _build_response(self, narrative: str, data: dict[str, Any]) -> ValidatedResponse:
        accepted: dict[str, Any] = {}
        errors: list[InvalidInputError] = []

        for field_name, validate in self._field_validators.items():
            if data.get(field_name) is None:
                continue
            result = validate(data[field_name])
            if result.status == FieldStatus.ACCEPT:
                accepted[field_name] = result.value
            elif result.status == FieldStatus.DROP:
                logger.debug("Narration field dropped", field=field_name, reason=result.reason)
            else:
                logger.warning(
                    "Narration field rejected",
                    field=field_name,
                    error=result.error.message if result.error else None,
                )
                if result.error is not None:
                    errors.append(result.error)

        return ValidatedResponse(
            narrative=self._clip(narrative),
            field_errors=errors,
            structured=True,
            **accepted,
        )

    # -------------------------------------------------------------------------
    # Field validators
    # -------------------------------------------------------------------------

    def _validate_mechanics(self, value: Any) -> FieldResult[str]:
        if isinstance(value, str) and value.strip():
            return FieldResult.accept(value)
        return FieldResult.drop("mechanics is not a non-empty string")

    def _validate_state_changes(self, value: Any) -> FieldResult[list[ProposedStateChange]]:
        if not isinstance(value, list):
            return FieldResult.drop("state_changes is not a list")

        changes: list[ProposedStateChange] = []
        for index, entry in enumerate(value):
            change = self._validate_state_change(entry)
            if change.status == FieldStatus.ACCEPT and change.value is not None:
                changes.append(change.value)
            else:
                logger.debug("State change dropped", index=index, reason=change.reason)
        return FieldResult.accept(changes)

    def _validate_state_change(self, entry: Any) -> FieldResult[ProposedStateChange]:
        if not isinstance(entry, dict):
            return FieldResult.drop("state change is not an object")

        raw_kind = entry.get("type", entry.get("kind"))
        try:
            kind = StateChangeKind(raw_kind)
        except ValueError:
            kind = StateChangeKind.CUSTOM

        raw_value = entry.get("value")
        if kind in AMOUNT_KINDS:
            value: int | str | None = _coerce_amount(raw_value)
            if value is None:
                return FieldResult.drop(f"{kind} value is not a non-negative integer")
        else:
            value = _coerce_value(raw_value)

        description = entry.get("description")
        return FieldResult.accept(
            ProposedStateChange(
                kind=kind,
                target=_optional_str(entry.get("target")),
                value=value,
                description=description if isinstance(description, str) else "",
                duration=_coerce_duration(entry.get("duration")),
                source=_optional_str(entry.get("source")),
            )
        )

    def _validate_requires_roll(self, value: Any) -> FieldResult[RollRequest]:
        if not isinstance(value, dict):
            return FieldResult.drop("requires_roll is not an object")

        dice = value.get("dice")
        try:
            parse_notation(dice)
        except DiceRollError as exc:
            return FieldResult.fail(
                DiceRollError(
                    f"Invalid dice notation: {dice}",
                    expression=str(dice),
                    field_name="requires_roll.dice",
                    details={"reason": exc.message},
                )
            )

        reason = value.get("reason")
        dc = value.get("dc")
        return FieldResult.accept(
            RollRequest(
                dice=dice.strip(),
                reason=reason if isinstance(reason, str) and reason else DEFAULT_ROLL_REASON,
                dc=dc if isinstance(dc, int) and not isinstance(dc, bool) else None,
            )
        )

    def _validate_rule_citations(self, value: Any) -> FieldResult[list[RuleCitation]]:
        if not isinstance(value, list):
            return FieldResult.drop("rule_citations is not a list")

        citations = [
            RuleCitation(
                rule_id=_optional_str(entry.get("rule_id")) or "",
                title=_optional_str(entry.get("title")) or "",
                source=_optional_str(entry.get("source")) or "",
                excerpt=_optional_str(entry.get("excerpt")),
            )
            for entry in value
            if isinstance(entry, dict)
        ]
        return FieldResult.accept(citations)

    def _validate_combat_action(self, value: Any) -> FieldResult[CombatAction]:
        if not isinstance(value, dict):
            return FieldResult.drop("combat_action is not an object")
        try:
            action_type = CombatActionType(value.get("type"))
        except ValueError:
            return FieldResult.drop(f"unknown combat action type: {value.get('type')!r}")

        return FieldResult.accept(
            CombatAction(
                type=action_type,
                target=_optional_str(value.get("target")),
                damage=_optional_str(value.get("damage")),
            )
        )

    def _validate_new_location(self, value: Any) -> FieldResult[str]:
        if isinstance(value, str) and value.strip():
            return FieldResult.accept(value)
        return FieldResult.drop("new_location is not a non-empty string")

    def _validate_new_npcs(self, value: Any) -> FieldResult[list[NPC]]:
        if not isinstance(value, list):
            return FieldResult.drop("new_npcs is not a list")

        npcs: list[NPC] = []
        for entry in value:
            if not isinstance(entry, dict):
                continue
            npcs.append(
                NPC(
                    id=_optional_str(entry.get("id")) or str(uuid.uuid4()),
                    name=_optional_str(entry.get("name")) or UNKNOWN_NPC_NAME,
                    description=_optional_str(entry.get("description")),
                    disposition=self._coerce_disposition(entry.get("disposition")),
                )
            )
        return FieldResult.accept(npcs)

    @staticmethod
    def _coerce_disposition(value: Any) -> Disposition | None:
        if not value:
            return None
        try:
            return Disposition(value)
        except ValueError:
            return Disposition.NEUTRAL


# =============================================================================
# Helpers
# =============================================================================


def extract_narrative(raw_text: str, validator: NarrationValidator | None = None) -> str:
    """Return only the narrative of a reply."""
    return (validator or NarrationValidator()).parse(raw_text).narrative


def requires_roll(response: ValidatedResponse) -> bool:
    """Check whether the reply asks for a dice roll."""
    return response.requires_roll is not None


def has_state_changes(response: ValidatedResponse) -> bool:
    """Check whether the reply proposes any state changes."""
    return len(response.state_changes) > 0


def format_for_display(response: ValidatedResponse) -> str:
    """Render narrative, mechanics and rule references as markdown."""
    display = response.narrative

    if response.mechanics:
        display += f"\n\n---\n*{response.mechanics}*"

    if response.rule_citations:
        display += "\n\n**Rule References:**"
        for citation in response.rule_citations:
            display += f"\n- {citation.title} ({citation.source})"

    return display


__all__ = [
    "FieldStatus",
    "FieldResult",
    "NarrationValidator",
    "extract_json_block",
    "extract_narrative",
    "requires_roll",
    "has_state_changes",
    "format_for_display",
]
