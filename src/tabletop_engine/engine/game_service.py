"""Action intake for a live session.

GameService is the single entry point for actors. Every operation is a
read-decide-write cycle against the session store: read the session,
compute a patch with the pure engine functions, and commit it against the
version that was read. A lost race (VersionConflictError) restarts the
cycle from a fresh read, up to ``settings.session.max_write_retries``
attempts.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol, TypeVar

from pydantic import ValidationError
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from tabletop_engine.core.config import Settings, get_settings
from tabletop_engine.core.exceptions import (
    CombatError,
    ConfigurationError,
    InvalidInputError,
    NotFoundError,
    VersionConflictError,
)
from tabletop_engine.core.logging import (
    bind_context,
    configure_logging_from_settings,
    get_logger,
    unbind_context,
)
from tabletop_engine.engine import combat
from tabletop_engine.engine.dice import DiceResult, DiceRoller
from tabletop_engine.engine.mutations import ApplyResult, MutationApplier
from tabletop_engine.engine.narration import NarrationValidator
from tabletop_engine.engine.prompts import (
    SYSTEM_PROMPT,
    build_dice_resolution_prompt,
    build_game_context,
    build_player_action_prompt,
)
from tabletop_engine.models.combat import CombatState, ParticipantInput
from tabletop_engine.models.enums import CombatOutcome, SessionEventType, SessionStatus
from tabletop_engine.models.narration import ProposedStateChange, ValidatedResponse
from tabletop_engine.models.session import (
    NPC,
    MapState,
    MapToken,
    Session,
    SessionEvent,
    SessionPatch,
    TerrainTile,
)
from tabletop_engine.storage import create_store
from tabletop_engine.storage.repository import SessionRepository, lifecycle_patch


logger = get_logger(__name__)

T = TypeVar("T")


class NarrationSource(Protocol):
    """Language-model collaborator that produces narration replies."""

    def complete(self, system_prompt: str, messages: list[dict[str, str]]) -> str:
        """Return the raw reply for a conversation."""
        ...


@dataclass
class ActionOutcome:
    """Result of applying changes to a session.

    Attributes:
        session: The session after the write.
        result: What the mutation applier did.
        response: The validated narration, for narrated changes.
    """

    session: Session
    result: ApplyResult
    response: ValidatedResponse | None = None


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Session write lost a race, retrying",
        attempt=retry_state.attempt_number,
        error=str(exc) if exc else None,
    )


def _require_combat(session: Session) -> CombatState:
    if session.combat_state is None or not session.combat_state.active:
        raise CombatError("No active combat")
    return session.combat_state


def _require_map(session: Session) -> MapState:
    if session.map_state is None:
        raise NotFoundError("Session has no map", resource="map_state")
    return session.map_state


def _turn_event(event_type: SessionEventType, state: CombatState) -> SessionEvent:
    entry = state.current_entry
    return SessionEvent(
        type=event_type,
        content={
            "combatant_id": entry.id if entry else None,
            "combatant_name": entry.name if entry else None,
            "round": state.round,
        },
    )


class GameService:
    """Orchestrates combat, narration and session lifecycle operations.

    Example:
        >>> service = GameService(repository, DiceRoller(seed=7), NarrationValidator(), MutationApplier())
        >>> session = service.start_combat(session_id, participants)
        >>> session = service.advance_turn(session_id)
    """

    def __init__(
        self,
        repository: SessionRepository,
        roller: DiceRoller,
        validator: NarrationValidator,
        applier: MutationApplier,
        narrator: NarrationSource | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            repository: Session repository over the shared store.
            roller: Dice roller for initiative.
            validator: Narration validator.
            applier: Mutation applier.
            narrator: Optional language-model collaborator for ``narrate``.
            settings: Application settings. Defaults to get_settings().
        """
        self.repository = repository
        self.roller = roller
        self.validator = validator
        self.applier = applier
        self.narrator = narrator
        self.settings = settings or get_settings()

    # =========================================================================
    # Write cycle
    # =========================================================================

    def _commit(
        self,
        session_id: str,
        decide: Callable[[Session], tuple[SessionPatch, T]],
    ) -> tuple[Session, T]:
        """Run a read-decide-write cycle, retrying lost races."""
        retry_settings = self.settings.session

        @retry(
            retry=retry_if_exception_type(VersionConflictError),
            stop=stop_after_attempt(retry_settings.max_write_retries),
            wait=wait_exponential(
                multiplier=max(retry_settings.retry_wait_min, 0.01),
                min=retry_settings.retry_wait_min,
                max=retry_settings.retry_wait_max,
            ),
            before_sleep=_log_retry,
            reraise=True,
        )
        def _attempt() -> tuple[Session, T]:
            session = self.repository.get_session(session_id)
            patch, payload = decide(session)
            if patch.is_empty:
                return session, payload
            return self.repository.update(session_id, patch, session.version), payload

        bind_context(session_id=session_id)
        try:
            return _attempt()
        finally:
            unbind_context("session_id")

    def _with_auto_end(
        self,
        session: Session,
        patch: SessionPatch,
        result: ApplyResult,
    ) -> SessionPatch:
        check = result.combat_end
        if check is None or not check.end or not self.settings.game.auto_end_combat:
            return patch
        logger.info("Combat ended automatically", outcome=check.outcome)
        final_round = session.combat_state.round if session.combat_state else None
        event = SessionEvent(
            type=SessionEventType.COMBAT_END,
            content={"outcome": check.outcome, "final_round": final_round, "automatic": True},
        )
        return patch.merge(SessionPatch(combat_state=None, events=session.append_events(event)))

    # =========================================================================
    # Combat
    # =========================================================================

    def start_combat(self, session_id: str, participants: Sequence[ParticipantInput]) -> Session:
        """Roll initiative and open an encounter.

        Raises:
            CombatError: If combat is already active.
            InvalidInputError: If participants is empty or has duplicate IDs.
        """

        def decide(session: Session) -> tuple[SessionPatch, None]:
            if session.in_combat:
                raise CombatError("Combat already active")
            state = combat.start_combat(
                participants,
                self.roller,
                initiative_die=self.settings.game.initiative_die,
            )
            started = SessionEvent(
                type=SessionEventType.COMBAT_START,
                content={
                    "participants": [
                        {"id": e.id, "name": e.name, "type": e.type, "initiative": e.initiative}
                        for e in state.initiative_order
                    ]
                },
            )
            events = session.append_events(started, _turn_event(SessionEventType.TURN_START, state))
            return SessionPatch(combat_state=state, events=events), None

        session, _ = self._commit(session_id, decide)
        return session

    def add_combatant(self, session_id: str, participant: ParticipantInput) -> Session:
        """Add a combatant to the running encounter."""

        def decide(session: Session) -> tuple[SessionPatch, None]:
            state = combat.add_combatant(
                _require_combat(session),
                participant,
                self.roller,
                initiative_die=self.settings.game.initiative_die,
            )
            return SessionPatch(combat_state=state), None

        session, _ = self._commit(session_id, decide)
        return session

    def advance_turn(self, session_id: str) -> Session:
        """End the current turn and move to the next active combatant.

        The acting combatant's effect and condition durations tick down
        before the turn moves on.

        Raises:
            CombatError: If no combat is active.
        """

        def decide(session: Session) -> tuple[SessionPatch, None]:
            current = _require_combat(session)
            state = combat.advance_turn(combat.tick_end_of_turn(current))
            events = session.append_events(
                _turn_event(SessionEventType.TURN_END, current),
                _turn_event(SessionEventType.TURN_START, state),
            )
            return SessionPatch(combat_state=state, events=events), None

        session, _ = self._commit(session_id, decide)
        return session

    def end_combat(
        self,
        session_id: str,
        outcome: CombatOutcome,
        summary: str | None = None,
    ) -> Session:
        """Close the encounter and clear the combat state.

        Raises:
            CombatError: If no combat is active.
        """

        def decide(session: Session) -> tuple[SessionPatch, int]:
            state = _require_combat(session)
            event = SessionEvent(
                type=SessionEventType.COMBAT_END,
                content={"outcome": outcome, "summary": summary, "final_round": state.round},
            )
            return SessionPatch(combat_state=None, events=session.append_events(event)), state.round

        session, final_round = self._commit(session_id, decide)
        logger.info("Combat ended", outcome=outcome, final_round=final_round, summary=summary)
        return session

    # =========================================================================
    # State changes
    # =========================================================================

    def apply_player_action(
        self,
        session_id: str,
        changes: Sequence[ProposedStateChange],
    ) -> ActionOutcome:
        """Apply changes submitted directly by a player or the table.

        Raises:
            NotFoundError: For a missing combat, map, combatant or token.
            InvalidInputError: For a missing target or wrongly typed value.
        """

        def decide(session: Session) -> tuple[SessionPatch, ApplyResult]:
            result = self.applier.apply(session, changes, strict=True)
            return self._with_auto_end(session, result.patch, result), result

        session, result = self._commit(session_id, decide)
        return ActionOutcome(session=session, result=result)

    def submit_narration(self, session_id: str, raw_text: str) -> ActionOutcome:
        """Validate a narrator reply and apply what it proposes.

        Unresolvable changes are skipped rather than failing the turn.

        Raises:
            MissingNarrativeError: If the reply is empty.
        """
        response = self.validator.parse(raw_text)

        def decide(session: Session) -> tuple[SessionPatch, ApplyResult]:
            result = self.applier.apply_response(session, response, strict=False)
            return self._with_auto_end(session, result.patch, result), result

        session, result = self._commit(session_id, decide)
        if result.skipped:
            logger.warning("Narrated changes skipped", count=len(result.skipped))
        return ActionOutcome(session=session, result=result, response=response)

    def narrate(
        self,
        session_id: str,
        player_action: str,
        player_name: str,
        history: Sequence[dict[str, str]] = (),
    ) -> ActionOutcome:
        """Ask the narrator to resolve a player action and apply its reply.

        Raises:
            ConfigurationError: If no narration source is configured.
        """
        session = self.repository.get_session(session_id)
        prompt = build_player_action_prompt(player_action, player_name, build_game_context(session))
        return self._narrate(session_id, prompt, history)

    def narrate_roll(
        self,
        session_id: str,
        roll: DiceResult,
        reason: str,
        dc: int | None = None,
        history: Sequence[dict[str, str]] = (),
    ) -> ActionOutcome:
        """Ask the narrator to narrate the outcome of a roll."""
        session = self.repository.get_session(session_id)
        prompt = build_dice_resolution_prompt(
            roll.notation,
            roll.total,
            reason,
            dc,
            build_game_context(session),
        )
        return self._narrate(session_id, prompt, history)

    def _narrate(
        self,
        session_id: str,
        prompt: str,
        history: Sequence[dict[str, str]],
    ) -> ActionOutcome:
        if self.narrator is None:
            raise ConfigurationError("No narration source configured", config_key="narrator")

        limit = self.settings.narration.history_limit
        recent: list[dict[str, str]] = list(history)[-limit:] if limit else []
        messages = [*recent, {"role": "user", "content": prompt}]

        logger.debug("Requesting narration", session_id=session_id, messages=len(messages))
        raw_text = self.narrator.complete(SYSTEM_PROMPT, messages)
        return self.submit_narration(session_id, raw_text)

    # =========================================================================
    # Scene: location, NPCs and map
    # =========================================================================

    def _write(self, session_id: str, decide: Callable[[Session], SessionPatch]) -> Session:
        session, _ = self._commit(session_id, lambda current: (decide(current), None))
        return session

    def update_location(self, session_id: str, location: str) -> Session:
        """Move the party to a new location.

        Raises:
            InvalidInputError: If the location is blank.
        """
        if not location.strip():
            raise InvalidInputError("Location must not be blank", field_name="location")
        return self._write(session_id, lambda _session: SessionPatch(current_location=location))

    def update_narrative_summary(self, session_id: str, summary: str) -> Session:
        return self._write(session_id, lambda _session: SessionPatch(narrative_summary=summary))

    def add_npc(self, session_id: str, npc: NPC) -> Session:
        """Add an NPC to the scene.

        Raises:
            InvalidInputError: If an NPC with the same ID is already present.
        """

        def decide(session: Session) -> SessionPatch:
            if any(existing.id == npc.id for existing in session.active_npcs):
                raise InvalidInputError(
                    f"NPC already present: {npc.id}",
                    field_name="npc.id",
                    invalid_value=npc.id,
                )
            return SessionPatch(active_npcs=[*session.active_npcs, npc])

        return self._write(session_id, decide)

    def remove_npc(self, session_id: str, npc_id: str) -> Session:
        """Remove an NPC from the scene.

        Raises:
            NotFoundError: If no NPC has that ID.
        """

        def decide(session: Session) -> SessionPatch:
            remaining = [npc for npc in session.active_npcs if npc.id != npc_id]
            if len(remaining) == len(session.active_npcs):
                raise NotFoundError(f"NPC not found: {npc_id}", resource="npc", resource_id=npc_id)
            return SessionPatch(active_npcs=remaining)

        return self._write(session_id, decide)

    def initialize_map(
        self,
        session_id: str,
        width: int,
        height: int,
        terrain: Sequence[TerrainTile] = (),
    ) -> Session:
        """Replace the battle map with an empty grid.

        Raises:
            InvalidInputError: If the size is out of range or a terrain
                tile lies outside the grid.
        """
        try:
            map_state = MapState(grid_width=width, grid_height=height, terrain=list(terrain))
        except ValidationError as exc:
            raise InvalidInputError(
                f"Invalid map: {exc.errors()[0]['msg']}",
                field_name="map_state",
                invalid_value={"width": width, "height": height},
            ) from exc
        return self._write(session_id, lambda _session: SessionPatch(map_state=map_state))

    def add_map_token(self, session_id: str, token: MapToken) -> Session:
        """Place a token on the map.

        Raises:
            NotFoundError: If the session has no map.
            InvalidInputError: If the token ID is taken or the position is
                outside the grid.
        """

        def decide(session: Session) -> SessionPatch:
            map_state = _require_map(session)
            if map_state.find_token(token.id) is not None:
                raise InvalidInputError(
                    f"Map token already present: {token.id}",
                    field_name="token.id",
                    invalid_value=token.id,
                )
            if not map_state.contains(token.x, token.y):
                raise InvalidInputError(
                    f"Position ({token.x}, {token.y}) is outside the "
                    f"{map_state.grid_width}x{map_state.grid_height} grid",
                    field_name="token",
                    invalid_value=(token.x, token.y),
                )
            updated = map_state.model_copy(update={"tokens": [*map_state.tokens, token]})
            return SessionPatch(map_state=updated)

        return self._write(session_id, decide)

    def remove_map_token(self, session_id: str, token_id: str) -> Session:
        """Take a token off the map.

        Raises:
            NotFoundError: If the session has no map or no such token.
        """

        def decide(session: Session) -> SessionPatch:
            map_state = _require_map(session)
            if map_state.find_token(token_id) is None:
                raise NotFoundError(
                    f"Map token not found: {token_id}",
                    resource="map_token",
                    resource_id=token_id,
                )
            tokens = [token for token in map_state.tokens if token.id != token_id]
            return SessionPatch(map_state=map_state.model_copy(update={"tokens": tokens}))

        return self._write(session_id, decide)

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    def _set_status(
        self,
        session_id: str,
        status: SessionStatus,
        summary: str | None = None,
    ) -> Session:
        session = self._write(session_id, lambda current: lifecycle_patch(current, status, summary))
        logger.info("Session status changed", session_id=session_id, status=session.status)
        return session

    def pause_session(self, session_id: str) -> Session:
        return self._set_status(session_id, SessionStatus.PAUSED)

    def resume_session(self, session_id: str) -> Session:
        return self._set_status(session_id, SessionStatus.ACTIVE)

    def end_session(self, session_id: str) -> Session:
        """End the session; the store stamps ``ended_at``."""
        return self._set_status(session_id, SessionStatus.ENDED)

    def save_session(self, session_id: str, summary: str) -> Session:
        """Pause the session and store its summary."""
        return self._set_status(session_id, SessionStatus.PAUSED, summary)


def create_game_service(
    settings: Settings | None = None,
    *,
    narrator: NarrationSource | None = None,
    seed: int | None = None,
) -> GameService:
    """Build a GameService wired from settings.

    Configures logging, opens the configured store and sizes the
    narration validator from ``settings.narration``.
    """
    settings = settings or get_settings()
    configure_logging_from_settings(settings)
    return GameService(
        SessionRepository(create_store(settings.storage)),
        DiceRoller(seed=seed),
        NarrationValidator.from_settings(settings.narration),
        MutationApplier(),
        narrator=narrator,
        settings=settings,
    )


__all__ = [
    "NarrationSource",
    "ActionOutcome",
    "GameService",
    "create_game_service",
]
