"""Snapshotting workflow memory after each step."""

from __future__ import annotations

import logging
from typing import Any, Optional

from .persistence.models import PersistenceResult, Snapshot
from .persistence.repository import StateRepository

logger = logging.getLogger(__name__)


class StateManager:
    """Writes a snapshot through the repository after every step.

    Persistence is best effort: failures are logged and reported in the
    returned :class:`PersistenceResult`, never raised.
    """

    def __init__(self, workflow: Any, repository: Optional[StateRepository]):
        self.workflow = workflow
        self.repository = repository

    def should_save_state(self) -> bool:
        return self.repository is not None and bool(
            getattr(self.workflow, "session_name", None) or getattr(self.workflow, "name", None)
        )

    def step_order(self, step_name: str) -> int:
        keys = self.workflow.memory.output_keys()
        if step_name in keys:
            return keys.index(step_name)
        return len(keys)

    def build_snapshot(self, step_name: str) -> Snapshot:
        state = self.workflow.memory.copy_state()
        return Snapshot(
            step_name=step_name,
            sequence_order=self.step_order(step_name),
            transcript=state["transcript"],
            output=state["output"],
            final_output=state["final_output"],
            metadata=state["metadata"],
            execution_order=list(state["output"].keys()),
        )

    def save_state(self, step_name: str, result: Any = None) -> PersistenceResult:
        if not self.should_save_state():
            return PersistenceResult(success=False, step_name=step_name, error="persistence disabled")
        try:
            session_id = self.repository.save_state(self.workflow, self.build_snapshot(step_name))
        except Exception as e:
            logger.warning(f"Failed to save workflow state for step {step_name}: {e}")
            return PersistenceResult(success=False, step_name=step_name, error=str(e))
        return PersistenceResult(success=True, step_name=step_name, session_id=session_id)


__all__ = ["StateManager"]
