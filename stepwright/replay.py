"""Resuming a workflow from a named step."""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Tuple

from .classifier import extract_name
from .persistence.models import TIMESTAMP_PATTERN, Snapshot
from .persistence.repository import StateRepository

logger = logging.getLogger(__name__)


def parse_replay_request(request: str) -> Tuple[Optional[str], str]:
    """Split ``[timestamp:]step_name``.

    Raises:
        ValueError: the timestamp is not ``YYYYMMDD_HHMMSS_LLL``.
    """
    if ":" not in request:
        return None, request
    timestamp, step_name = request.split(":", 1)
    if not TIMESTAMP_PATTERN.match(timestamp):
        raise ValueError(
            f"Invalid timestamp format: {timestamp}. Expected YYYYMMDD_HHMMSS_LLL"
        )
    return timestamp, step_name


def _names(step: Any) -> List[str]:
    if isinstance(step, list):
        return [name for substep in step for name in _names(substep)]
    names = []
    if isinstance(step, str):
        names.append(step)
    name = extract_name(step)
    if name is not None:
        names.append(name)
    return names


def find_step_index(steps: List[Any], step_name: str) -> Optional[int]:
    """Index of the top-level step named ``step_name``.

    Parallel groups match when any member does; maps match on their leading
    key.
    """
    for index, step in enumerate(steps):
        if step_name in _names(step):
            return index
    return None


class ReplayHandler:
    def __init__(self, workflow: Any, repository: Optional[StateRepository]):
        self.workflow = workflow
        self.repository = repository
        self.processed = False

    def process_replay(self, steps: List[Any], request: Optional[str]) -> List[Any]:
        """Restore memory for ``request`` and return the steps left to run."""
        if not request or self.processed:
            return steps

        timestamp, step_name = parse_replay_request(request)
        index = find_step_index(steps, step_name)
        self.processed = True
        if index is None:
            logger.warning(f"Step {step_name} not found in workflow, running from beginning")
            return steps

        session = f" (session: {timestamp})" if timestamp else ""
        logger.info(f"Replaying from step: {step_name}{session}")
        if timestamp:
            self.workflow.session_timestamp = timestamp

        snapshot = self.load_state_and_restore(step_name, timestamp)
        if snapshot is None:
            logger.warning(
                f"Could not find suitable state data from a previous step to '{step_name}'{session}. "
                f"Will run workflow from '{step_name}' without prior context."
            )
        return steps[index:]

    def load_state_and_restore(
        self, step_name: str, timestamp: Optional[str] = None
    ) -> Optional[Snapshot]:
        """Restore memory from the state saved before ``step_name``.

        Persistence failures are logged and the replay continues from the
        target step without prior context.
        """
        if self.repository is None:
            return None

        try:
            source_session = None if timestamp else self.repository.latest_session_id(self.workflow)
        except Exception as e:
            logger.warning(f"Failed to look up the latest session: {e}")
            return None

        try:
            snapshot = self.repository.load_state_before_step(self.workflow, step_name, timestamp)
        except Exception as e:
            logger.warning(f"Ignoring unreadable saved state: {e}")
            snapshot = None

        if source_session is not None:
            try:
                new_session = self.repository.fork_session(self.workflow, source_session, step_name)
            except Exception as e:
                logger.warning(f"Failed to fork session {source_session}: {e}")
            else:
                logger.info(f"Resuming session {source_session} as {new_session}")

        if snapshot is not None:
            self.workflow.memory.restore(
                transcript=snapshot.transcript,
                output=snapshot.output,
                final_output=snapshot.final_output,
                metadata=snapshot.metadata,
            )
        return snapshot


__all__ = ["ReplayHandler", "find_step_index", "parse_replay_request"]
