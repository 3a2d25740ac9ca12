"""Repository abstraction for workflow state persistence."""

from __future__ import annotations

from typing import Any, List, Optional, Protocol

from .models import (
    SessionDetails,
    SessionRecord,
    Snapshot,
    new_session_timestamp,
    session_id_for,
)


class SessionOwner(Protocol):
    """What a repository needs to know about the running workflow."""

    name: str
    path: Optional[str]
    session_name: Optional[str]
    session_timestamp: Optional[str]


class StateRepository(Protocol):
    """Protocol for workflow state persistence backends."""

    def save_state(self, workflow: SessionOwner, snapshot: Snapshot) -> str:
        """Persist a snapshot, creating the session on first write. Returns the session id."""

    def load_state_before_step(
        self, workflow: SessionOwner, step_name: str, timestamp: Optional[str] = None
    ) -> Optional[Snapshot]:
        """Nearest snapshot strictly before ``step_name``, else the latest one."""

    def latest_session_id(self, workflow: SessionOwner) -> Optional[str]:
        """Most recent session for the workflow's name and path."""

    def fork_session(
        self, workflow: SessionOwner, source_session_id: str, target_step_name: str
    ) -> str:
        """Copy snapshots preceding ``target_step_name`` into a fresh session."""

    def save_final_output(self, workflow: SessionOwner, content: str) -> Optional[str]:
        """Record the final output and mark the session completed."""

    def update_status(self, session_id: str, status: str) -> None:
        """Set the session's lifecycle status."""

    def list_sessions(
        self,
        status: Optional[str] = None,
        workflow_name: Optional[str] = None,
        older_than: Optional[str] = None,
        limit: int = 100,
    ) -> List[SessionRecord]:
        """Sessions matching the filters, newest first."""

    def get_session_details(self, session_id: str) -> Optional[SessionDetails]:
        """Session record with its snapshots and events."""

    def cleanup_old_sessions(self, older_than: str) -> int:
        """Delete sessions older than the given age. Returns the count removed."""

    def add_event(
        self,
        workflow_path: Optional[str],
        session_id: Optional[str],
        event_name: str,
        event_data: Any = None,
    ) -> str:
        """Deliver an event to a session and set it running again."""


def workflow_path_of(workflow: SessionOwner) -> str:
    path = getattr(workflow, "path", None)
    return str(path) if path else "notarget"


def workflow_name_of(workflow: SessionOwner) -> str:
    return getattr(workflow, "session_name", None) or getattr(workflow, "name", None) or "unnamed"


def session_id_of(workflow: SessionOwner, timestamp: Optional[str] = None) -> str:
    """Session id for ``workflow``, assigning it a session timestamp if it has none."""
    if timestamp is None:
        if not workflow.session_timestamp:
            workflow.session_timestamp = new_session_timestamp()
        timestamp = workflow.session_timestamp
    return session_id_for(workflow_name_of(workflow), workflow_path_of(workflow), timestamp)
