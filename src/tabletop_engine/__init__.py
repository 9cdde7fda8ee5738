"""Tabletop Engine - shared-state engine for live tabletop sessions.

Several actors (players, the table host, a language-model narrator) mutate
one session concurrently. The engine keeps that state consistent:

- Python owns TRUTH (session state, initiative, dice rolls)
- Narration is untrusted text, validated field by field before it can
  change anything
- Every write is an optimistic, versioned commit; losers re-read and retry

Example:
    >>> from tabletop_engine import (
    ...     DiceRoller, GameService, InMemorySessionStore, MutationApplier,
    ...     NarrationValidator, SessionRepository,
    ... )
    >>>
    >>> repository = SessionRepository(InMemorySessionStore())
    >>> session = repository.create_session("campaign-1", name="The Sunless Citadel")
    >>> service = GameService(repository, DiceRoller(seed=3), NarrationValidator(), MutationApplier())
    >>> outcome = service.submit_narration(session.id, '{"narrative": "The door creaks open."}')
    >>> outcome.response.narrative
    'The door creaks open.'

Modules:
    core: Configuration, logging, and base exceptions.
    models: Pydantic V2 schemas for sessions, combat and narration.
    engine: Dice, combat turn order, narration validation, mutation
        application and the game service.
    storage: Session stores (in-memory, SQLite) and the repository.
"""

from __future__ import annotations

# Core
from tabletop_engine.core.config import Settings, get_settings
from tabletop_engine.core.exceptions import (
    InvalidInputError,
    MissingNarrativeError,
    NotFoundError,
    TabletopEngineError,
    VersionConflictError,
)
from tabletop_engine.core.logging import configure_logging, get_logger

# Engine
from tabletop_engine.engine.dice import DiceResult, DiceRoller
from tabletop_engine.engine.game_service import (
    ActionOutcome,
    GameService,
    NarrationSource,
    create_game_service,
)
from tabletop_engine.engine.mutations import ApplyResult, MutationApplier
from tabletop_engine.engine.narration import NarrationValidator

# Models
from tabletop_engine.models import (
    CombatState,
    ParticipantInput,
    ProposedStateChange,
    Session,
    SessionEvent,
    SessionPatch,
    ValidatedResponse,
)

# Storage
from tabletop_engine.storage import (
    InMemorySessionStore,
    SessionRepository,
    SessionStore,
    SQLiteSessionStore,
    create_store,
)


__version__ = "0.1.0"
__all__ = [
    # Version info
    "__version__",
    # Core
    "TabletopEngineError",
    "InvalidInputError",
    "MissingNarrativeError",
    "NotFoundError",
    "VersionConflictError",
    "Settings",
    "get_settings",
    "configure_logging",
    "get_logger",
    # Engine
    "DiceRoller",
    "DiceResult",
    "NarrationValidator",
    "MutationApplier",
    "ApplyResult",
    "GameService",
    "ActionOutcome",
    "NarrationSource",
    "create_game_service",
    # Models
    "Session",
    "SessionEvent",
    "SessionPatch",
    "CombatState",
    "ParticipantInput",
    "ProposedStateChange",
    "ValidatedResponse",
    # Storage
    "SessionStore",
    "InMemorySessionStore",
    "SQLiteSessionStore",
    "SessionRepository",
    "create_store",
]
