"""Workflow executor: the entry point for running steps."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, List, Mapping, Optional

from .contracts import ExecutionContext
from .coordinator import StepExecutorCoordinator
from .error_handler import ErrorHandler
from .loader import StepLoader
from .persistence.repository import StateRepository
from .state import StateManager

logger = logging.getLogger(__name__)


class WorkflowExecutor:
    """Executes workflow steps against one :class:`~stepwright.workflow.Workflow`.

    Wires the step loader, error handler, state manager and coordinator
    together; steps and executors call back into it for nested execution.
    """

    def __init__(
        self,
        workflow: Any,
        repository: Optional[StateRepository] = None,
        loader: Optional[StepLoader] = None,
        error_handler: Optional[ErrorHandler] = None,
        state_manager: Optional[StateManager] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.workflow = workflow
        self.loader = loader or StepLoader(workflow)
        self.error_handler = error_handler or ErrorHandler(
            notifier=getattr(workflow, "notifier", None), sleep=sleep
        )
        self.state_manager = state_manager or StateManager(workflow, repository)
        self.coordinator = StepExecutorCoordinator(self)

    @property
    def command_executor(self) -> Any:
        return self.workflow.command_executor

    def execute_steps(
        self,
        steps: List[Any],
        context: Optional[ExecutionContext] = None,
        mark_last: bool = False,
    ) -> List[Any]:
        return self.coordinator.execute_steps(steps, context, mark_last=mark_last)

    def execute_step(self, name: Any, context: Optional[ExecutionContext] = None) -> Any:
        """Run a single step, named or of any other shape."""
        context = (context or ExecutionContext()).evolve(
            step_key=None, exit_on_error=None, is_last_step=False
        )
        return self.coordinator.execute(name, context)

    def interpolate(self, text: Any, variables: Optional[Mapping[str, Any]] = None) -> Any:
        return self.workflow.expressions.interpolate(text, variables)


__all__ = ["WorkflowExecutor"]
