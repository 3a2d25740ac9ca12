"""Running a workflow document end to end."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from .config import EngineConfig, load_config, load_workflow
from .errors import WorkflowPaused
from .executor import WorkflowExecutor
from .persistence import get_state_repository
from .persistence.models import SESSION_COMPLETED, SESSION_FAILED, SESSION_WAITING
from .persistence.repository import StateRepository, session_id_of
from .replay import ReplayHandler
from .workflow import Workflow

logger = logging.getLogger(__name__)


class WorkflowRunner:
    """Loads a workflow, applies replay, runs it and records the outcome.

    Persistence problems are logged and never fail the run.
    """

    def __init__(
        self,
        workflow_path: str | Path,
        replay: Optional[str] = None,
        config: Optional[EngineConfig] = None,
        repository: Optional[StateRepository] = None,
        **workflow_options: Any,
    ) -> None:
        self.workflow_path = Path(workflow_path)
        self.replay = replay
        self.config = config or load_config()
        self.repository = repository if repository is not None else get_state_repository(config=self.config)
        self.workflow = Workflow(
            path=self.workflow_path,
            definition=load_workflow(self.workflow_path),
            config=self.config,
            **workflow_options,
        )
        self.executor = WorkflowExecutor(self.workflow, self.repository)

    def run(self) -> Optional[str]:
        """Execute the workflow and return its final output.

        Returns ``None`` when the workflow paused waiting for an event.
        """
        steps = ReplayHandler(self.workflow, self.repository).process_replay(
            list(self.workflow.definition.steps), self.replay
        )
        logger.info(f"Running workflow {self.workflow.name} ({len(steps)} steps)")

        try:
            self.executor.execute_steps(steps, mark_last=True)
        except WorkflowPaused as e:
            logger.info(f"{e}. Waiting for an external event to resume.")
            self.record_status(SESSION_WAITING)
            return None
        except Exception:
            self.record_status(SESSION_FAILED)
            raise

        final_output = self.workflow.final_output
        self.save_final_output(final_output)
        logger.info(f"Workflow {self.workflow.name} completed")
        return final_output

    def record_status(self, status: str) -> None:
        if self.repository is None:
            return
        try:
            self.repository.update_status(session_id_of(self.workflow), status)
        except Exception as e:
            logger.warning(f"Failed to mark session as {status}: {e}")

    def save_final_output(self, content: str) -> None:
        if self.repository is None:
            return
        if not content:
            self.record_status(SESSION_COMPLETED)
            return
        try:
            self.repository.save_final_output(self.workflow, content)
        except Exception as e:
            logger.warning(f"Failed to save final output: {e}")


__all__ = ["WorkflowRunner"]
