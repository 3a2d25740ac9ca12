"""SQLite implementation of the state repository."""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

from ..errors import StateError
from .models import (
    SESSION_COMPLETED,
    SESSION_RUNNING,
    SESSION_WAITING,
    SessionDetails,
    SessionEvent,
    SessionRecord,
    SessionStateSummary,
    Snapshot,
    parse_age,
)
from .repository import (
    SessionOwner,
    StateRepository,
    session_id_of,
    workflow_name_of,
    workflow_path_of,
)

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = os.path.join("~", ".stepwright", "sessions.db")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(sep=" ", timespec="microseconds")


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteStateRepository(StateRepository):
    """Persist sessions, snapshots and events in a SQLite database."""

    def __init__(self, db_path: str | Path | None = None):
        path = db_path or os.getenv("STEPWRIGHT_SESSIONS_DB") or DEFAULT_DB_PATH
        self.db_path = str(path) if str(path) == ":memory:" else os.path.expanduser(str(path))
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        with self._lock:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    workflow_name TEXT NOT NULL,
                    workflow_path TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'running',
                    current_step_index INTEGER,
                    final_output TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS session_states (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT NOT NULL,
                    step_index INTEGER NOT NULL,
                    step_name TEXT NOT NULL,
                    state_data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE
                );

                CREATE TABLE IF NOT EXISTS session_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT NOT NULL,
                    event_name TEXT NOT NULL,
                    event_data TEXT,
                    received_at TEXT NOT NULL,
                    FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_sessions_status ON sessions(status);
                CREATE INDEX IF NOT EXISTS idx_sessions_workflow_name ON sessions(workflow_name);
                CREATE INDEX IF NOT EXISTS idx_sessions_created_at ON sessions(created_at);
                CREATE INDEX IF NOT EXISTS idx_session_states_session_id ON session_states(session_id);
                CREATE INDEX IF NOT EXISTS idx_session_events_session_id ON session_events(session_id);
                """
            )
            self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    def _ensure_session(self, workflow: SessionOwner) -> str:
        session_id = session_id_of(workflow)
        with self._lock:
            if self._fetchone("SELECT id FROM sessions WHERE id = ?", session_id):
                return session_id
            now = _now()
            self._execute(
                "INSERT INTO sessions (id, workflow_name, workflow_path, status, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?)",
                session_id,
                workflow_name_of(workflow),
                workflow_path_of(workflow),
                SESSION_RUNNING,
                now,
                now,
            )
        return session_id

    def _row_to_session(self, row: sqlite3.Row) -> SessionRecord:
        keys = row.keys()
        return SessionRecord(
            id=row["id"],
            workflow_name=row["workflow_name"],
            workflow_path=row["workflow_path"],
            status=row["status"],
            current_step_index=row["current_step_index"],
            final_output=row["final_output"] if "final_output" in keys else None,
            created_at=_parse_time(row["created_at"]),
            updated_at=_parse_time(row["updated_at"]),
        )

    # ------------------------------------------------------------------
    # Repository API
    def save_state(self, workflow: SessionOwner, snapshot: Snapshot) -> str:
        with self._lock:
            session_id = self._ensure_session(workflow)
            self._execute(
                "INSERT INTO session_states (session_id, step_index, step_name, state_data, created_at) VALUES (?, ?, ?, ?, ?)",
                session_id,
                snapshot.sequence_order,
                snapshot.step_name,
                json.dumps(snapshot.model_dump(), default=str),
                _now(),
            )
            self._execute(
                "UPDATE sessions SET current_step_index = ?, updated_at = ? WHERE id = ?",
                snapshot.sequence_order,
                _now(),
                session_id,
            )
        return session_id

    def latest_session_id(self, workflow: SessionOwner) -> Optional[str]:
        row = self._fetchone(
            """
            SELECT id FROM sessions
            WHERE workflow_name = ? AND workflow_path = ?
            ORDER BY created_at DESC, id DESC
            LIMIT 1
            """,
            workflow_name_of(workflow),
            workflow_path_of(workflow),
        )
        return row["id"] if row else None

    def load_state_before_step(
        self, workflow: SessionOwner, step_name: str, timestamp: Optional[str] = None
    ) -> Optional[Snapshot]:
        if timestamp:
            session_id = session_id_of(workflow, timestamp)
        else:
            session_id = self.latest_session_id(workflow)
        if not session_id:
            return None

        target = self._fetchone(
            "SELECT MIN(step_index) AS step_index FROM session_states WHERE session_id = ? AND step_name = ?",
            session_id,
            step_name,
        )
        if target is not None and target["step_index"] is not None:
            row = self._fetchone(
                """
                SELECT state_data, step_name FROM session_states
                WHERE session_id = ? AND step_index < ?
                ORDER BY step_index DESC, id DESC
                LIMIT 1
                """,
                session_id,
                target["step_index"],
            )
        else:
            row = self._fetchone(
                """
                SELECT state_data, step_name FROM session_states
                WHERE session_id = ?
                ORDER BY step_index DESC, id DESC
                LIMIT 1
                """,
                session_id,
            )
        if row is None:
            logger.info(f"No state found for session {session_id}")
            return None

        logger.info(
            f"Found state from step: {row['step_name']} (will replay from here to {step_name})"
        )
        try:
            return Snapshot.model_validate(json.loads(row["state_data"]))
        except ValueError as e:
            raise StateError(
                f"Corrupt state for step {row['step_name']} in session {session_id}: {e}",
                original_error=e,
            ) from e

    def fork_session(
        self, workflow: SessionOwner, source_session_id: str, target_step_name: str
    ) -> str:
        with self._lock:
            workflow.session_timestamp = None
            new_session_id = self._ensure_session(workflow)
            if new_session_id == source_session_id:
                return new_session_id
            self._execute(
                """
                INSERT INTO session_states (session_id, step_index, step_name, state_data, created_at)
                SELECT ?, step_index, step_name, state_data, created_at
                FROM session_states
                WHERE session_id = ?
                  AND step_index < COALESCE(
                    (SELECT MIN(step_index) FROM session_states WHERE session_id = ? AND step_name = ?),
                    999999
                  )
                ORDER BY id
                """,
                new_session_id,
                source_session_id,
                source_session_id,
                target_step_name,
            )
        return new_session_id

    def save_final_output(self, workflow: SessionOwner, content: str) -> Optional[str]:
        if not content:
            return None
        with self._lock:
            session_id = self._ensure_session(workflow)
            self._execute(
                "UPDATE sessions SET final_output = ?, status = ?, updated_at = ? WHERE id = ?",
                content,
                SESSION_COMPLETED,
                _now(),
                session_id,
            )
        return session_id

    def update_status(self, session_id: str, status: str) -> None:
        self._execute(
            "UPDATE sessions SET status = ?, updated_at = ? WHERE id = ?",
            status,
            _now(),
            session_id,
        )

    def list_sessions(
        self,
        status: Optional[str] = None,
        workflow_name: Optional[str] = None,
        older_than: Optional[str] = None,
        limit: int = 100,
    ) -> List[SessionRecord]:
        conditions: list[str] = []
        params: list[Any] = []
        if status:
            conditions.append("status = ?")
            params.append(status)
        if workflow_name:
            conditions.append("workflow_name = ?")
            params.append(workflow_name)
        if older_than:
            cutoff = datetime.now(timezone.utc) - parse_age(older_than)
            conditions.append("created_at < ?")
            params.append(cutoff.isoformat(sep=" ", timespec="microseconds"))
        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        params.append(int(limit))

        rows = self._fetchall(
            f"""
            SELECT id, workflow_name, workflow_path, status, current_step_index,
                   created_at, updated_at
            FROM sessions
            {where_clause}
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            *params,
        )
        return [self._row_to_session(row) for row in rows]

    def get_session_details(self, session_id: str) -> Optional[SessionDetails]:
        row = self._fetchone("SELECT * FROM sessions WHERE id = ?", session_id)
        if not row:
            return None
        states = self._fetchall(
            "SELECT step_index, step_name, created_at FROM session_states WHERE session_id = ? ORDER BY step_index, id",
            session_id,
        )
        events = self._fetchall(
            "SELECT event_name, event_data, received_at FROM session_events WHERE session_id = ? ORDER BY received_at, id",
            session_id,
        )
        return SessionDetails(
            session=self._row_to_session(row),
            states=[
                SessionStateSummary(
                    step_index=r["step_index"],
                    step_name=r["step_name"],
                    created_at=_parse_time(r["created_at"]),
                )
                for r in states
            ],
            events=[
                SessionEvent(
                    event_name=r["event_name"],
                    event_data=json.loads(r["event_data"]) if r["event_data"] else None,
                    received_at=_parse_time(r["received_at"]),
                )
                for r in events
            ],
        )

    def cleanup_old_sessions(self, older_than: str) -> int:
        cutoff = datetime.now(timezone.utc) - parse_age(older_than)
        return self._execute(
            "DELETE FROM sessions WHERE created_at < ?",
            cutoff.isoformat(sep=" ", timespec="microseconds"),
        )

    def add_event(
        self,
        workflow_path: Optional[str],
        session_id: Optional[str],
        event_name: str,
        event_data: Any = None,
    ) -> str:
        with self._lock:
            if not session_id:
                row = self._fetchone(
                    """
                    SELECT id FROM sessions
                    WHERE workflow_path = ? AND status = ?
                    ORDER BY created_at DESC, id DESC
                    LIMIT 1
                    """,
                    str(workflow_path),
                    SESSION_WAITING,
                )
                if row is None:
                    raise LookupError(f"No waiting session found for workflow: {workflow_path}")
                session_id = row["id"]
            elif not self._fetchone("SELECT id FROM sessions WHERE id = ?", session_id):
                raise LookupError(f"Session not found: {session_id}")

            self._execute(
                "INSERT INTO session_events (session_id, event_name, event_data, received_at) VALUES (?, ?, ?, ?)",
                session_id,
                event_name,
                json.dumps(event_data) if event_data is not None else None,
                _now(),
            )
            self.update_status(session_id, SESSION_RUNNING)
        return session_id

    def close(self) -> None:
        with self._lock:
            self._conn.close()


__all__ = ["SQLiteStateRepository", "DEFAULT_DB_PATH"]
