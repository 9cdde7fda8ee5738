"""SQLite persistence layer for sessions.

Each session is stored as a JSON document next to the columns needed for
lookups and for the conditional write (id, campaign_id, status, version,
last_activity). Every call opens its own connection; writes run inside a
``BEGIN IMMEDIATE`` transaction so the version check and the update are
serialized across threads and processes.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from tabletop_engine.core.exceptions import NotFoundError, StorageError, VersionConflictError
from tabletop_engine.core.logging import get_logger
from tabletop_engine.models.enums import SessionStatus
from tabletop_engine.models.session import Session, SessionPatch, utc_now
from tabletop_engine.storage.base import apply_patch


logger = get_logger(__name__)


class SQLiteSessionStore:
    """SQLite-backed SessionStore.

    Args:
        db_path: Path to the database file. Parent directories are created.
        busy_timeout: Seconds to wait for a locked database.
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: str | Path, *, busy_timeout: float = 5.0) -> None:
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

        logger.info(f"Session database initialized at {self.db_path}")

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Open a connection in autocommit mode with proper cleanup."""
        try:
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.busy_timeout,
                isolation_level=None,
            )
        except sqlite3.Error as exc:
            raise StorageError(
                f"Failed to open session database: {exc}",
                details={"db_path": str(self.db_path)},
            ) from exc

        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.Error as exc:
            raise StorageError(
                f"Session database error: {exc}",
                details={"db_path": str(self.db_path)},
            ) from exc
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Run a write transaction holding the database write lock."""
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except Exception:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    campaign_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    last_activity TEXT NOT NULL,
                    document_json TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_sessions_campaign
                ON sessions(campaign_id, status)
            """)
            conn.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
                (self.SCHEMA_VERSION,),
            )

    # =========================================================================
    # SessionStore Operations
    # =========================================================================

    def create(self, session: Session) -> Session:
        try:
            with self._transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO sessions (id, campaign_id, status, version, last_activity, document_json)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        session.id,
                        session.campaign_id,
                        str(session.status),
                        session.version,
                        session.last_activity.isoformat(),
                        session.model_dump_json(),
                    ),
                )
        except StorageError as exc:
            if isinstance(exc.__cause__, sqlite3.IntegrityError):
                raise StorageError(
                    f"Session already exists: {session.id}",
                    details={"session_id": session.id},
                ) from exc.__cause__
            raise

        logger.info(f"Created session: {session.id} (campaign {session.campaign_id})")
        return session

    def read(self, session_id: str) -> Session:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT document_json FROM sessions WHERE id = ?",
                (session_id,),
            ).fetchone()

        if row is None:
            raise NotFoundError(
                f"Session not found: {session_id}",
                resource="session",
                resource_id=session_id,
            )
        return Session.model_validate_json(row["document_json"])

    def write_if_version(
        self,
        session_id: str,
        patch: SessionPatch,
        expected_version: int,
    ) -> Session:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT version, document_json FROM sessions WHERE id = ?",
                (session_id,),
            ).fetchone()
            if row is None:
                raise NotFoundError(
                    f"Session not found: {session_id}",
                    resource="session",
                    resource_id=session_id,
                )
            if row["version"] != expected_version:
                raise VersionConflictError(
                    "Session was modified by another writer",
                    session_id=session_id,
                    expected_version=expected_version,
                    actual_version=row["version"],
                )

            current = Session.model_validate_json(row["document_json"])
            updated = apply_patch(current, patch, now=utc_now())

            cursor = conn.execute(
                """
                UPDATE sessions
                SET status = ?, version = ?, last_activity = ?, document_json = ?
                WHERE id = ? AND version = ?
                """,
                (
                    str(updated.status),
                    updated.version,
                    updated.last_activity.isoformat(),
                    updated.model_dump_json(),
                    session_id,
                    expected_version,
                ),
            )
            if cursor.rowcount != 1:
                raise VersionConflictError(
                    "Session was modified by another writer",
                    session_id=session_id,
                    expected_version=expected_version,
                )

        logger.debug("Session committed", session_id=session_id, version=updated.version)
        return updated

    def list_sessions(
        self,
        campaign_id: str | None = None,
        status: SessionStatus | None = None,
    ) -> list[Session]:
        query = "SELECT document_json FROM sessions"
        clauses: list[str] = []
        params: list[str] = []
        if campaign_id is not None:
            clauses.append("campaign_id = ?")
            params.append(campaign_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(str(status))
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY last_activity DESC"

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()

        return [Session.model_validate_json(row["document_json"]) for row in rows]


__all__ = ["SQLiteSessionStore"]
