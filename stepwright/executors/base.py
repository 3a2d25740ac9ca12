"""Base interface for per-kind step executors."""

from __future__ import annotations

import abc
import logging
from typing import Any, Callable, Optional

from ..contracts import ExecutionContext

logger = logging.getLogger(__name__)


class StepExecutor(metaclass=abc.ABCMeta):
    """Executes every step of one :class:`~stepwright.contracts.StepKind`.

    Executors hold a reference to the workflow executor and reach the
    workflow, loader, error handler and state manager through it.
    """

    def __init__(self, workflow_executor: Any) -> None:
        self.workflow_executor = workflow_executor

    @abc.abstractmethod
    def execute(self, step: Any, context: ExecutionContext) -> Any:
        """Run ``step`` and return its result."""
        raise NotImplementedError

    @property
    def workflow(self) -> Any:
        return self.workflow_executor.workflow

    @property
    def memory(self) -> Any:
        return self.workflow.memory

    @property
    def state_manager(self) -> Any:
        return self.workflow_executor.state_manager

    @property
    def error_handler(self) -> Any:
        return self.workflow_executor.error_handler

    def interpolate(self, value: Any) -> Any:
        return self.workflow_executor.interpolate(value)

    def run_with_error_handling(
        self, step_name: str, block: Callable[[], Any], context: ExecutionContext
    ) -> Any:
        return self.error_handler.with_error_handling(
            step_name,
            block,
            retries=context.retries,
            retry_policy=context.retry_policy,
            resource_type=self.workflow.resource_type,
        )

    def store(self, key: Optional[str], result: Any) -> Any:
        """Record ``result`` under ``key`` and snapshot workflow memory."""
        if key is None:
            return result
        self.memory.set_output(key, result)
        self.state_manager.save_state(key, result)
        return result


__all__ = ["StepExecutor"]
