"""JSON-file implementation of the state repository.

Layout::

    <root>/<workflow-slug>/<path-hash>/<timestamp>/
        session.json
        step_000_<name>.json
        final_output.txt
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import (
    SESSION_COMPLETED,
    SESSION_RUNNING,
    SESSION_WAITING,
    SessionDetails,
    SessionEvent,
    SessionRecord,
    SessionStateSummary,
    Snapshot,
    new_session_timestamp,
    parse_age,
    path_hash,
    slugify,
)
from .repository import (
    SessionOwner,
    StateRepository,
    session_id_of,
    workflow_name_of,
    workflow_path_of,
)

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = os.path.join("~", ".stepwright", "sessions")
SESSION_FILE = "session.json"
FINAL_OUTPUT_FILE = "final_output.txt"

_SESSION_ID = re.compile(r"^(?P<slug>.+)_(?P<hash>[0-9a-f]{8})_(?P<ts>\d{8}_\d{6}_\d{3})$")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _step_file_name(order: int, step_name: str) -> str:
    safe = re.sub(r"[^\w.-]+", "_", step_name).strip("_")[:80] or "step"
    return f"step_{order:03d}_{safe}.json"


class FileStateRepository(StateRepository):
    """Persist snapshots as one JSON document per step."""

    def __init__(self, root: str | Path | None = None):
        root = root or os.getenv("STEPWRIGHT_STATE_DIR") or DEFAULT_STATE_DIR
        self.root = Path(os.path.expanduser(str(root)))
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Helper methods
    def _workflow_dir(self, workflow: SessionOwner) -> Path:
        return self.root / slugify(workflow_name_of(workflow)) / path_hash(workflow_path_of(workflow))

    def _session_dir_for_id(self, session_id: str) -> Optional[Path]:
        match = _SESSION_ID.match(session_id)
        if not match:
            return None
        return self.root / match.group("slug") / match.group("hash") / match.group("ts")

    def _read_json(self, path: Path) -> Any:
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    def _write_json(self, path: Path, data: Any) -> None:
        tmp = path.with_suffix(path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
        os.replace(tmp, path)

    def _ensure_session(self, workflow: SessionOwner) -> tuple[str, Path]:
        session_id = session_id_of(workflow)
        session_dir = self._workflow_dir(workflow) / workflow.session_timestamp
        session_file = session_dir / SESSION_FILE
        if not session_file.exists():
            session_dir.mkdir(parents=True, exist_ok=True)
            now = _now()
            self._write_json(
                session_file,
                {
                    "id": session_id,
                    "workflow_name": workflow_name_of(workflow),
                    "workflow_path": workflow_path_of(workflow),
                    "status": SESSION_RUNNING,
                    "current_step_index": None,
                    "final_output": None,
                    "created_at": now,
                    "updated_at": now,
                    "events": [],
                },
            )
        return session_id, session_dir

    def _update_session(self, session_dir: Path, **changes: Any) -> Dict[str, Any]:
        session_file = session_dir / SESSION_FILE
        data = self._read_json(session_file)
        data.update(changes)
        data["updated_at"] = _now()
        self._write_json(session_file, data)
        return data

    def _snapshots(self, session_dir: Path) -> List[Snapshot]:
        snapshots = []
        for path in sorted(session_dir.glob("step_*.json")):
            try:
                snapshots.append(Snapshot.model_validate(self._read_json(path)))
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping unreadable snapshot {path}: {e}")
        snapshots.sort(key=lambda s: (s.sequence_order, s.created_at))
        return snapshots

    def _preceding(self, snapshots: List[Snapshot], step_name: str) -> List[Snapshot]:
        orders = [s.sequence_order for s in snapshots if s.step_name == step_name]
        if not orders:
            return snapshots
        target = min(orders)
        return [s for s in snapshots if s.sequence_order < target]

    def _record(self, data: Dict[str, Any]) -> SessionRecord:
        return SessionRecord.model_validate(
            {k: v for k, v in data.items() if k in SessionRecord.model_fields}
        )

    def _all_sessions(self) -> List[Dict[str, Any]]:
        sessions = []
        for session_file in self.root.glob(f"*/*/*/{SESSION_FILE}"):
            try:
                sessions.append(self._read_json(session_file))
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping unreadable session {session_file}: {e}")
        sessions.sort(key=lambda s: (s.get("created_at") or "", s.get("id") or ""), reverse=True)
        return sessions

    # ------------------------------------------------------------------
    # Repository API
    def save_state(self, workflow: SessionOwner, snapshot: Snapshot) -> str:
        with self._lock:
            session_id, session_dir = self._ensure_session(workflow)
            self._write_json(
                session_dir / _step_file_name(snapshot.sequence_order, snapshot.step_name),
                snapshot.model_dump(),
            )
            self._update_session(session_dir, current_step_index=snapshot.sequence_order)
        return session_id

    def latest_session_id(self, workflow: SessionOwner) -> Optional[str]:
        workflow_dir = self._workflow_dir(workflow)
        if not workflow_dir.is_dir():
            return None
        timestamps = sorted(
            (p.name for p in workflow_dir.iterdir() if (p / SESSION_FILE).exists()),
            reverse=True,
        )
        if not timestamps:
            return None
        return session_id_of(workflow, timestamps[0])

    def load_state_before_step(
        self, workflow: SessionOwner, step_name: str, timestamp: Optional[str] = None
    ) -> Optional[Snapshot]:
        session_id = session_id_of(workflow, timestamp) if timestamp else self.latest_session_id(workflow)
        session_dir = self._session_dir_for_id(session_id) if session_id else None
        if session_dir is None or not session_dir.is_dir():
            return None

        snapshots = self._snapshots(session_dir)
        if not snapshots:
            logger.info(f"No state found for session {session_id}")
            return None

        candidates = self._preceding(snapshots, step_name)
        if not candidates:
            logger.info(f"No state precedes step {step_name} in session {session_id}")
            return None
        snapshot = candidates[-1]
        logger.info(
            f"Found state from step: {snapshot.step_name} (will replay from here to {step_name})"
        )
        return snapshot

    def fork_session(
        self, workflow: SessionOwner, source_session_id: str, target_step_name: str
    ) -> str:
        with self._lock:
            workflow.session_timestamp = new_session_timestamp()
            new_session_id, new_dir = self._ensure_session(workflow)
            source_dir = self._session_dir_for_id(source_session_id)
            if new_session_id == source_session_id or source_dir is None:
                return new_session_id
            for snapshot in self._preceding(self._snapshots(source_dir), target_step_name):
                self._write_json(
                    new_dir / _step_file_name(snapshot.sequence_order, snapshot.step_name),
                    snapshot.model_dump(),
                )
        return new_session_id

    def save_final_output(self, workflow: SessionOwner, content: str) -> Optional[str]:
        if not content:
            return None
        with self._lock:
            session_id, session_dir = self._ensure_session(workflow)
            (session_dir / FINAL_OUTPUT_FILE).write_text(content, encoding="utf-8")
            self._update_session(session_dir, final_output=content, status=SESSION_COMPLETED)
        return session_id

    def update_status(self, session_id: str, status: str) -> None:
        session_dir = self._session_dir_for_id(session_id)
        if session_dir is None or not (session_dir / SESSION_FILE).exists():
            raise LookupError(f"Session not found: {session_id}")
        with self._lock:
            self._update_session(session_dir, status=status)

    def list_sessions(
        self,
        status: Optional[str] = None,
        workflow_name: Optional[str] = None,
        older_than: Optional[str] = None,
        limit: int = 100,
    ) -> List[SessionRecord]:
        cutoff = datetime.now(timezone.utc) - parse_age(older_than) if older_than else None
        records = []
        for data in self._all_sessions():
            if status and data.get("status") != status:
                continue
            if workflow_name and data.get("workflow_name") != workflow_name:
                continue
            record = self._record(data)
            if cutoff and (record.created_at is None or record.created_at >= cutoff):
                continue
            records.append(record)
            if len(records) >= limit:
                break
        return records

    def get_session_details(self, session_id: str) -> Optional[SessionDetails]:
        session_dir = self._session_dir_for_id(session_id)
        if session_dir is None or not (session_dir / SESSION_FILE).exists():
            return None
        data = self._read_json(session_dir / SESSION_FILE)
        return SessionDetails(
            session=self._record(data),
            states=[
                SessionStateSummary(
                    step_index=s.sequence_order, step_name=s.step_name, created_at=s.created_at
                )
                for s in self._snapshots(session_dir)
            ],
            events=[SessionEvent.model_validate(e) for e in data.get("events", [])],
        )

    def cleanup_old_sessions(self, older_than: str) -> int:
        removed = 0
        for record in self.list_sessions(older_than=older_than, limit=10**9):
            session_dir = self._session_dir_for_id(record.id)
            if session_dir is not None and session_dir.is_dir():
                shutil.rmtree(session_dir)
                removed += 1
        return removed

    def add_event(
        self,
        workflow_path: Optional[str],
        session_id: Optional[str],
        event_name: str,
        event_data: Any = None,
    ) -> str:
        with self._lock:
            if not session_id:
                waiting = [
                    s
                    for s in self._all_sessions()
                    if s.get("status") == SESSION_WAITING
                    and s.get("workflow_path") == str(workflow_path)
                ]
                if not waiting:
                    raise LookupError(f"No waiting session found for workflow: {workflow_path}")
                session_id = waiting[0]["id"]

            session_dir = self._session_dir_for_id(session_id)
            if session_dir is None or not (session_dir / SESSION_FILE).exists():
                raise LookupError(f"Session not found: {session_id}")
            data = self._read_json(session_dir / SESSION_FILE)
            events = data.get("events", [])
            events.append(
                {"event_name": event_name, "event_data": event_data, "received_at": _now()}
            )
            self._update_session(session_dir, events=events, status=SESSION_RUNNING)
        return session_id


__all__ = ["FileStateRepository", "DEFAULT_STATE_DIR"]
