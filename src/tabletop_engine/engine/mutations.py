"""Resolve proposed state changes against a session.

The applier never touches storage. It reads a Session, resolves each
ProposedStateChange against the session's combat and map state, and
returns a SessionPatch for the caller to commit with the version it read.

Direct player actions are applied strictly: the first unresolvable change
raises. Narrated changes are applied leniently: unresolvable changes are
skipped and reported in the result.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from tabletop_engine.core.exceptions import InvalidInputError, NotFoundError
from tabletop_engine.core.logging import get_logger
from tabletop_engine.engine.combat import (
    CombatEndCheck,
    add_condition,
    apply_damage,
    apply_healing,
    get_combatant,
    remove_condition,
    replace_combatant,
    should_combat_end,
)
from tabletop_engine.models.combat import CombatState, Condition
from tabletop_engine.models.enums import StateChangeKind
from tabletop_engine.models.narration import ProposedStateChange, ValidatedResponse
from tabletop_engine.models.session import MapState, Session, SessionPatch


logger = get_logger(__name__)


@dataclass(frozen=True)
class SkippedChange:
    """A change that could not be resolved in lenient mode."""

    change: ProposedStateChange
    reason: str


@dataclass
class ApplyResult:
    """Outcome of applying a batch of changes.

    Attributes:
        patch: Session patch to commit.
        applied: Changes that took effect (or were recorded, for custom).
        skipped: Changes that could not be resolved.
        deferred: Inventory changes for the character collaborator.
        combat_end: End-of-combat check, evaluated when any combatant's
            active flag flipped.
    """

    patch: SessionPatch
    applied: list[ProposedStateChange] = field(default_factory=list)
    skipped: list[SkippedChange] = field(default_factory=list)
    deferred: list[ProposedStateChange] = field(default_factory=list)
    combat_end: CombatEndCheck | None = None


@dataclass
class _WorkingState:
    combat: CombatState | None
    map_state: MapState | None
    combat_changed: bool = False
    map_changed: bool = False
    activity_flipped: bool = False


def _amount(change: ProposedStateChange) -> int:
    value = change.value
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise InvalidInputError(
            f"{change.kind} value must be a non-negative integer",
            field_name="value",
            invalid_value=change.value,
        )
    return value


def _condition_name(change: ProposedStateChange) -> str:
    if not isinstance(change.value, str) or not change.value.strip():
        raise InvalidInputError(
            "Condition name must be a non-empty string",
            field_name="value",
            invalid_value=change.value,
        )
    return change.value.strip()


def _target(change: ProposedStateChange) -> str:
    if not change.target:
        raise InvalidInputError(f"{change.kind} requires a target", field_name="target")
    return change.target


def _position(change: ProposedStateChange) -> tuple[int, int]:
    value = change.value
    parts = value.split(",") if isinstance(value, str) else []
    if len(parts) != 2:
        raise InvalidInputError(
            "move value must look like 'x,y'",
            field_name="value",
            invalid_value=value,
        )
    try:
        return int(parts[0].strip()), int(parts[1].strip())
    except ValueError as exc:
        raise InvalidInputError(
            "move coordinates must be integers",
            field_name="value",
            invalid_value=value,
        ) from exc


def _active_combat(working: _WorkingState) -> CombatState:
    if working.combat is None or not working.combat.active:
        raise NotFoundError("No active combat", resource="combat_state")
    return working.combat


class MutationApplier:
    """Apply ProposedStateChange batches to a Session.

    Example:
        >>> applier = MutationApplier()
        >>> result = applier.apply(session, [damage_change], strict=True)
        >>> repository.update(session.id, result.patch, session.version)
    """

    def __init__(self) -> None:
        self._handlers: dict[
            StateChangeKind, Callable[[ProposedStateChange, _WorkingState], None]
        ] = {
            StateChangeKind.DAMAGE: self._apply_damage,
            StateChangeKind.HEAL: self._apply_heal,
            StateChangeKind.CONDITION_ADD: self._apply_condition_add,
            StateChangeKind.CONDITION_REMOVE: self._apply_condition_remove,
            StateChangeKind.MOVE: self._apply_move,
        }

    def apply(
        self,
        session: Session,
        changes: Sequence[ProposedStateChange],
        *,
        strict: bool = False,
    ) -> ApplyResult:
        """Resolve changes against a session.

        Args:
            session: Session as read from the store.
            changes: Changes to resolve, in order.
            strict: Raise on the first unresolvable change instead of
                skipping it.

        Returns:
            ApplyResult with the patch to commit.

        Raises:
            NotFoundError: In strict mode, for a missing combat, map,
                combatant or token.
            InvalidInputError: In strict mode, for a missing target or a
                wrongly typed value.
        """
        working = _WorkingState(combat=session.combat_state, map_state=session.map_state)
        result = ApplyResult(patch=SessionPatch())

        for change in changes:
            if change.kind == StateChangeKind.INVENTORY:
                result.deferred.append(change)
                logger.debug("Inventory change deferred", target=change.target)
                continue
            if change.kind == StateChangeKind.CUSTOM:
                result.applied.append(change)
                logger.info("Custom state change recorded", description=change.description)
                continue

            try:
                self._handlers[change.kind](change, working)
            except (NotFoundError, InvalidInputError) as exc:
                if strict:
                    raise
                result.skipped.append(SkippedChange(change=change, reason=exc.message))
                logger.warning(
                    "State change skipped",
                    kind=change.kind,
                    target=change.target,
                    reason=exc.message,
                )
                continue
            result.applied.append(change)

        patch_fields: dict[str, Any] = {}
        if working.combat_changed:
            patch_fields["combat_state"] = working.combat
        if working.map_changed:
            patch_fields["map_state"] = working.map_state
        result.patch = SessionPatch(**patch_fields)

        if working.activity_flipped and working.combat is not None:
            result.combat_end = should_combat_end(working.combat)
            if result.combat_end.end:
                logger.info("Combat decided", outcome=result.combat_end.outcome)

        return result

    def apply_response(
        self,
        session: Session,
        response: ValidatedResponse,
        *,
        strict: bool = False,
    ) -> ApplyResult:
        """Apply a validated narration reply.

        Besides the state changes, the new location replaces the current
        one and new NPCs are appended unless their ID is already present.
        """
        result = self.apply(session, response.state_changes, strict=strict)

        extra: dict[str, Any] = {}
        if response.new_location:
            extra["current_location"] = response.new_location
        if response.new_npcs:
            known = {npc.id for npc in session.active_npcs}
            fresh = []
            for npc in response.new_npcs:
                if npc.id not in known:
                    fresh.append(npc)
                    known.add(npc.id)
            if fresh:
                extra["active_npcs"] = [*session.active_npcs, *fresh]

        if extra:
            result.patch = result.patch.merge(SessionPatch(**extra))
        return result

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    def _update_combatant(
        self,
        change: ProposedStateChange,
        working: _WorkingState,
        update: Callable[..., Any],
        *args: Any,
    ) -> None:
        combat = _active_combat(working)
        before = get_combatant(combat, _target(change))
        after = update(before, *args)
        working.combat = replace_combatant(combat, after)
        working.combat_changed = True
        if before.is_active != after.is_active:
            working.activity_flipped = True
            logger.info(
                "Combatant activity changed",
                combatant=after.name,
                is_active=after.is_active,
                current_hp=after.current_hp,
            )

    def _apply_damage(self, change: ProposedStateChange, working: _WorkingState) -> None:
        self._update_combatant(change, working, apply_damage, _amount(change))

    def _apply_heal(self, change: ProposedStateChange, working: _WorkingState) -> None:
        self._update_combatant(change, working, apply_healing, _amount(change))

    def _apply_condition_add(self, change: ProposedStateChange, working: _WorkingState) -> None:
        condition = Condition(
            name=_condition_name(change),
            duration=change.duration,
            source=change.source,
        )
        self._update_combatant(change, working, add_condition, condition)

    def _apply_condition_remove(
        self, change: ProposedStateChange, working: _WorkingState
    ) -> None:
        self._update_combatant(change, working, remove_condition, _condition_name(change))

    def _apply_move(self, change: ProposedStateChange, working: _WorkingState) -> None:
        map_state = working.map_state
        if map_state is None:
            raise NotFoundError("Session has no map", resource="map_state")

        token_id = _target(change)
        if map_state.find_token(token_id) is None:
            raise NotFoundError(
                f"Map token not found: {token_id}",
                resource="map_token",
                resource_id=token_id,
            )

        x, y = _position(change)
        if not map_state.contains(x, y):
            raise InvalidInputError(
                f"Position ({x}, {y}) is outside the "
                f"{map_state.grid_width}x{map_state.grid_height} grid",
                field_name="value",
                invalid_value=change.value,
            )

        tokens = [
            token.model_copy(update={"x": x, "y": y}) if token.id == token_id else token
            for token in map_state.tokens
        ]
        working.map_state = MapState.model_validate({**map_state.model_dump(), "tokens": tokens})
        working.map_changed = True


__all__ = [
    "MutationApplier",
    "ApplyResult",
    "SkippedChange",
]
