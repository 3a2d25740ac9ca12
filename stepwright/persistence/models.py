"""Data models for persisted workflow state."""

from __future__ import annotations

import hashlib
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
TIMESTAMP_PATTERN = re.compile(r"^\d{8}_\d{6}_\d{3}$")

SESSION_RUNNING = "running"
SESSION_WAITING = "waiting"
SESSION_COMPLETED = "completed"
SESSION_FAILED = "failed"


class Snapshot(BaseModel):
    """Point-in-time copy of workflow memory taken after a step."""

    step_name: str
    sequence_order: int
    transcript: List[Dict[str, Any]] = Field(default_factory=list)
    output: Dict[str, Any] = Field(default_factory=dict)
    final_output: List[str] = Field(default_factory=list)
    metadata: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    execution_order: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class SessionRecord(BaseModel):
    """A named, timestamped run of a workflow."""

    id: str
    workflow_name: str
    workflow_path: str
    status: str = SESSION_RUNNING
    current_step_index: Optional[int] = None
    final_output: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SessionEvent(BaseModel):
    """An external event delivered to a waiting session."""

    event_name: str
    event_data: Any = None
    received_at: Optional[datetime] = None


class SessionStateSummary(BaseModel):
    step_index: int
    step_name: str
    created_at: Optional[datetime] = None


class SessionDetails(BaseModel):
    session: SessionRecord
    states: List[SessionStateSummary] = Field(default_factory=list)
    events: List[SessionEvent] = Field(default_factory=list)


class PersistenceResult(BaseModel):
    """Outcome of a best-effort state write."""

    success: bool
    step_name: str
    session_id: Optional[str] = None
    error: Optional[str] = None


def new_session_timestamp(now: Optional[datetime] = None) -> str:
    """``YYYYMMDD_HHMMSS_LLL`` in local time."""
    now = now or datetime.now()
    return f"{now.strftime(TIMESTAMP_FORMAT)}_{now.microsecond // 1000:03d}"


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", (name or "").lower()).strip("_")
    return slug or "unnamed"


def path_hash(path: Optional[str]) -> str:
    return hashlib.md5((path or "notarget").encode("utf-8")).hexdigest()[:8]


def session_id_for(workflow_name: Optional[str], workflow_path: Optional[str], timestamp: str) -> str:
    return f"{slugify(workflow_name or 'unnamed')}_{path_hash(workflow_path)}_{timestamp}"


_AGE_UNITS = {
    "second": "seconds",
    "minute": "minutes",
    "hour": "hours",
    "day": "days",
    "week": "weeks",
}
_AGE_PATTERN = re.compile(r"^\s*(\d+)\s*([a-z]+?)s?\s*$", re.IGNORECASE)
_AGE_SHORTHAND = {"s": "second", "m": "minute", "h": "hour", "d": "day", "w": "week"}


def parse_age(text: str) -> timedelta:
    """Parse ``"7 days"``, ``"12h"`` and similar into a timedelta."""
    match = _AGE_PATTERN.match(str(text))
    if not match:
        raise ValueError(f"Invalid age: {text!r}")
    amount, unit = int(match.group(1)), match.group(2).lower()
    unit = _AGE_SHORTHAND.get(unit, unit)
    if unit not in _AGE_UNITS:
        raise ValueError(f"Invalid age unit in {text!r}")
    return timedelta(**{_AGE_UNITS[unit]: amount})


__all__ = [
    "PersistenceResult",
    "SESSION_COMPLETED",
    "SESSION_FAILED",
    "SESSION_RUNNING",
    "SESSION_WAITING",
    "SessionDetails",
    "SessionEvent",
    "SessionRecord",
    "SessionStateSummary",
    "Snapshot",
    "TIMESTAMP_PATTERN",
    "new_session_timestamp",
    "parse_age",
    "path_hash",
    "session_id_for",
    "slugify",
]
