"""Persistence layer for stepwright workflow state."""

from __future__ import annotations

import os
from typing import Optional

from ..config import EngineConfig, load_config
from .file import FileStateRepository
from .models import (
    PersistenceResult,
    SessionDetails,
    SessionEvent,
    SessionRecord,
    Snapshot,
)
from .repository import StateRepository
from .sqlite import SQLiteStateRepository

_repository_instance: StateRepository | None = None


def get_state_repository(
    backend: Optional[str] = None, config: Optional[EngineConfig] = None
) -> StateRepository:
    """Factory function to obtain a state repository.

    The backend is selected from ``backend``, the ``STEPWRIGHT_STATE_STORAGE``
    environment variable, or loaded configuration, in that order. Without
    explicit arguments the previously built repository is reused.
    """

    global _repository_instance
    if _repository_instance is not None and backend is None and config is None:
        return _repository_instance

    config = config or load_config()
    backend = (
        backend
        or os.getenv("STEPWRIGHT_STATE_STORAGE")
        or config.state_backend
    ).lower()

    if backend == "sqlite":
        _repository_instance = SQLiteStateRepository(config.sessions_db)
    elif backend == "file":
        _repository_instance = FileStateRepository(config.state_dir)
    else:
        raise ValueError(f"Unsupported state backend: {backend}")

    return _repository_instance


def reset_state_repository() -> None:
    global _repository_instance
    _repository_instance = None


__all__ = [
    "FileStateRepository",
    "PersistenceResult",
    "SQLiteStateRepository",
    "SessionDetails",
    "SessionEvent",
    "SessionRecord",
    "Snapshot",
    "StateRepository",
    "get_state_repository",
    "reset_state_repository",
]
