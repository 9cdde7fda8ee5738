"""Session repository.

Thin domain layer over a SessionStore. Every write goes through
``update`` with the version the caller last observed. The lifecycle
helpers read the current version first and may still lose a race, in
which case VersionConflictError propagates to the caller; GameService
runs the same lifecycle_patch decisions inside its retry loop.
"""

from __future__ import annotations

import uuid
from typing import Any

from tabletop_engine.core.logging import get_logger
from tabletop_engine.models.enums import SessionEventType, SessionStatus
from tabletop_engine.models.session import Session, SessionEvent, SessionPatch
from tabletop_engine.storage.base import SessionStore


logger = get_logger(__name__)


STATUS_EVENTS = {
    SessionStatus.ACTIVE: SessionEventType.SESSION_RESUME,
    SessionStatus.ENDED: SessionEventType.SESSION_END,
}


def lifecycle_patch(
    session: Session,
    status: SessionStatus,
    summary: str | None = None,
) -> SessionPatch:
    """Build the patch for a status change.

    Saving (a summary with the paused status) stores the summary. Resume,
    end and save are recorded in the session event log; a plain pause
    is not.
    """
    changes: dict[str, Any] = {"status": status}
    if summary is not None:
        changes["narrative_summary"] = summary
        event = SessionEvent(type=SessionEventType.SESSION_SAVE, content={"summary": summary})
        changes["events"] = session.append_events(event)
    elif status in STATUS_EVENTS:
        changes["events"] = session.append_events(SessionEvent(type=STATUS_EVENTS[status]))
    return SessionPatch(**changes)


class SessionRepository:
    """Create, look up and update sessions through a SessionStore."""

    def __init__(self, store: SessionStore) -> None:
        self.store = store

    def create_session(self, campaign_id: str, name: str | None = None) -> Session:
        """Create an active session at version 1."""
        session = Session(id=str(uuid.uuid4()), campaign_id=campaign_id, name=name)
        self.store.create(session)
        logger.info("Session created", session_id=session.id, campaign_id=campaign_id)
        return session

    def get_session(self, session_id: str) -> Session:
        """Load a session.

        Raises:
            NotFoundError: If the session does not exist.
        """
        return self.store.read(session_id)

    def list_by_campaign(self, campaign_id: str) -> list[Session]:
        """All sessions of a campaign, most recently active first."""
        return self.store.list_sessions(campaign_id=campaign_id)

    def get_active_session(self, campaign_id: str) -> Session | None:
        """Most recently active session of a campaign with status active."""
        sessions = self.store.list_sessions(campaign_id=campaign_id, status=SessionStatus.ACTIVE)
        return sessions[0] if sessions else None

    def get_paused_sessions(self, campaign_id: str) -> list[Session]:
        """Paused sessions of a campaign, most recently active first."""
        return self.store.list_sessions(campaign_id=campaign_id, status=SessionStatus.PAUSED)

    def update(self, session_id: str, patch: SessionPatch, expected_version: int) -> Session:
        """Commit a patch against the version the caller read.

        Returns:
            The committed session.

        Raises:
            VersionConflictError: If another writer committed first.
            NotFoundError: If the session does not exist.
        """
        session = self.store.write_if_version(session_id, patch, expected_version)
        logger.debug(
            "Session updated",
            session_id=session_id,
            version=session.version,
            fields=sorted(patch.model_fields_set),
        )
        return session

    def _set_status(
        self,
        session_id: str,
        status: SessionStatus,
        summary: str | None = None,
    ) -> Session:
        current = self.store.read(session_id)
        session = self.update(session_id, lifecycle_patch(current, status, summary), current.version)
        logger.info("Session status changed", session_id=session_id, status=status)
        return session

    def end_session(self, session_id: str) -> Session:
        """Mark a session ended; ``ended_at`` is stamped by the store."""
        return self._set_status(session_id, SessionStatus.ENDED)

    def pause_session(self, session_id: str) -> Session:
        return self._set_status(session_id, SessionStatus.PAUSED)

    def resume_session(self, session_id: str) -> Session:
        return self._set_status(session_id, SessionStatus.ACTIVE)

    def save_session(self, session_id: str, summary: str) -> Session:
        """Pause a session and store its narrative summary."""
        return self._set_status(session_id, SessionStatus.PAUSED, summary)


__all__ = [
    "SessionRepository",
    "lifecycle_patch",
]
