"""In-memory session store.

Sessions are kept as JSON documents so readers never share mutable
objects with the store. A single lock makes the conditional write atomic.
Each instance is independent.
"""

from __future__ import annotations

import threading

from tabletop_engine.core.exceptions import NotFoundError, StorageError, VersionConflictError
from tabletop_engine.core.logging import get_logger
from tabletop_engine.models.enums import SessionStatus
from tabletop_engine.models.session import Session, SessionPatch, utc_now
from tabletop_engine.storage.base import apply_patch


logger = get_logger(__name__)


class InMemorySessionStore:
    """Thread-safe session store backed by a dict."""

    def __init__(self) -> None:
        self._documents: dict[str, str] = {}
        self._lock = threading.Lock()

    def create(self, session: Session) -> Session:
        with self._lock:
            if session.id in self._documents:
                raise StorageError(
                    f"Session already exists: {session.id}",
                    details={"session_id": session.id},
                )
            self._documents[session.id] = session.model_dump_json()
        logger.debug("Session stored", session_id=session.id)
        return session

    def read(self, session_id: str) -> Session:
        with self._lock:
            document = self._documents.get(session_id)
        if document is None:
            raise NotFoundError(
                f"Session not found: {session_id}",
                resource="session",
                resource_id=session_id,
            )
        return Session.model_validate_json(document)

    def write_if_version(
        self,
        session_id: str,
        patch: SessionPatch,
        expected_version: int,
    ) -> Session:
        with self._lock:
            document = self._documents.get(session_id)
            if document is None:
                raise NotFoundError(
                    f"Session not found: {session_id}",
                    resource="session",
                    resource_id=session_id,
                )

            current = Session.model_validate_json(document)
            if current.version != expected_version:
                raise VersionConflictError(
                    "Session was modified by another writer",
                    session_id=session_id,
                    expected_version=expected_version,
                    actual_version=current.version,
                )

            updated = apply_patch(current, patch, now=utc_now())
            self._documents[session_id] = updated.model_dump_json()

        logger.debug("Session committed", session_id=session_id, version=updated.version)
        return updated

    def list_sessions(
        self,
        campaign_id: str | None = None,
        status: SessionStatus | None = None,
    ) -> list[Session]:
        with self._lock:
            documents = list(self._documents.values())

        sessions = [Session.model_validate_json(doc) for doc in documents]
        matching = [
            s
            for s in sessions
            if (campaign_id is None or s.campaign_id == campaign_id)
            and (status is None or s.status == status)
        ]
        return sorted(matching, key=lambda s: s.last_activity, reverse=True)


__all__ = ["InMemorySessionStore"]
