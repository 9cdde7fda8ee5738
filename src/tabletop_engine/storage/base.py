"""Session store interface.

A SessionStore persists Session documents and exposes a single
conditional write. Every implementation must make ``write_if_version``
atomic: compare the stored version with the expected one, apply the
patch, bump the version and refresh ``last_activity`` as one step.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from tabletop_engine.models.enums import SessionStatus
from tabletop_engine.models.session import Session, SessionPatch


@runtime_checkable
class SessionStore(Protocol):
    """Persistence collaborator for sessions."""

    def create(self, session: Session) -> Session:
        """Insert a new session.

        Raises:
            StorageError: If a session with the same ID exists.
        """
        ...

    def read(self, session_id: str) -> Session:
        """Load a session.

        Raises:
            NotFoundError: If the session does not exist.
        """
        ...

    def write_if_version(
        self,
        session_id: str,
        patch: SessionPatch,
        expected_version: int,
    ) -> Session:
        """Commit a patch only if the stored version matches.

        Returns:
            The committed session, with version ``expected_version + 1``.

        Raises:
            NotFoundError: If the session does not exist.
            VersionConflictError: If the stored version differs.
        """
        ...

    def list_sessions(
        self,
        campaign_id: str | None = None,
        status: SessionStatus | None = None,
    ) -> list[Session]:
        """List sessions, most recently active first."""
        ...


def apply_patch(session: Session, patch: SessionPatch, *, now: datetime) -> Session:
    """Build the committed form of a session.

    Applies only the fields the patch sets, bumps the version, refreshes
    ``last_activity`` and stamps ``ended_at`` the first time the status
    becomes ended. The result is fully re-validated.
    """
    data = session.model_dump()
    for name, value in patch.changes().items():
        data[name] = value.model_dump() if hasattr(value, "model_dump") else value

    data["version"] = session.version + 1
    data["last_activity"] = now
    if data["status"] == SessionStatus.ENDED and session.ended_at is None:
        data["ended_at"] = now

    return Session.model_validate(data)


__all__ = [
    "SessionStore",
    "apply_patch",
]
