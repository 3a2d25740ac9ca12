"""Routing of steps to the executor for their kind."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple, Type, Union

from .classifier import classify, display_name, extract_name
from .contracts import ExecutionContext, StepKind
from .error_handler import policy_for_retries
from .errors import WorkflowPaused
from .executors import (
    AgentStepExecutor,
    CaseExecutor,
    CommandStepExecutor,
    ConditionalExecutor,
    GlobStepExecutor,
    InputExecutor,
    IterationExecutor,
    LabeledStepExecutor,
    NamedStepExecutor,
    ParallelExecutor,
    StepExecutor,
)
from .retry import RetryPolicy, build_policy

logger = logging.getLogger(__name__)

DEFAULT_EXECUTORS: Dict[StepKind, Type[StepExecutor]] = {
    StepKind.PARALLEL: ParallelExecutor,
    StepKind.COMMAND: CommandStepExecutor,
    StepKind.AGENT: AgentStepExecutor,
    StepKind.GLOB: GlobStepExecutor,
    StepKind.ITERATION: IterationExecutor,
    StepKind.CONDITIONAL: ConditionalExecutor,
    StepKind.CASE: CaseExecutor,
    StepKind.INPUT: InputExecutor,
    StepKind.LABELED: LabeledStepExecutor,
    StepKind.PROMPT: NamedStepExecutor,
    StepKind.STANDARD: NamedStepExecutor,
}


class StepExecutorCoordinator:
    """Classifies each step and dispatches it to its kind's executor."""

    def __init__(self, workflow_executor: Any) -> None:
        self.workflow_executor = workflow_executor
        self.executors: Dict[StepKind, StepExecutor] = {
            kind: executor_class(workflow_executor)
            for kind, executor_class in DEFAULT_EXECUTORS.items()
        }

    @property
    def workflow(self) -> Any:
        return self.workflow_executor.workflow

    def register(
        self, kind: StepKind, executor: Union[StepExecutor, Type[StepExecutor]]
    ) -> None:
        """Replace the executor used for ``kind``."""
        if isinstance(executor, type):
            executor = executor(self.workflow_executor)
        self.executors[StepKind(kind)] = executor

    def executor_for(self, kind: StepKind) -> StepExecutor:
        return self.executors[kind]

    def execute_steps(
        self,
        steps: List[Any],
        context: Optional[ExecutionContext] = None,
        mark_last: bool = False,
    ) -> List[Any]:
        """Run ``steps`` in order.

        Raises:
            WorkflowPaused: the next plain step is the workflow's pause point.
        """
        context = context or ExecutionContext()
        results = []
        last = len(steps) - 1
        for index, step in enumerate(steps):
            self.check_pause(step)
            step_context = context.evolve(
                step_key=None,
                exit_on_error=None,
                is_last_step=mark_last and index == last,
                retries=0,
                retry_policy=None,
            )
            results.append(self.execute(step, step_context))
        return results

    def execute(self, step: Any, context: Optional[ExecutionContext] = None) -> Any:
        context = context or ExecutionContext()
        kind = classify(step, has_resource=bool(self.workflow.resource))
        config_key = context.step_key or self.config_key(step, kind)
        config = self.step_config(config_key)
        retries, policy = self.retry_settings(config_key)

        exit_on_error = context.exit_on_error
        if exit_on_error is None and "exit_on_error" in config:
            exit_on_error = bool(config["exit_on_error"])

        step_context = context.evolve(
            step_name=display_name(step, kind),
            exit_on_error=exit_on_error,
            retries=retries,
            retry_policy=policy,
        )
        logger.debug(f"Dispatching {kind.value} step: {step_context.step_name}")
        return self.executor_for(kind).execute(step, step_context)

    def check_pause(self, step: Any) -> None:
        pause_step = getattr(self.workflow, "pause_step_name", None)
        if pause_step and isinstance(step, str) and extract_name(step) == pause_step:
            logger.info(f"Pausing workflow before step: {pause_step}")
            raise WorkflowPaused(f"Workflow paused before step '{pause_step}'", step_name=pause_step)

    @staticmethod
    def config_key(step: Any, kind: StepKind) -> Optional[str]:
        if kind is StepKind.PARALLEL:
            return None
        return extract_name(step)

    def step_config(self, key: Optional[str]) -> Dict[str, Any]:
        definition = getattr(self.workflow, "definition", None)
        return definition.step_config(key) if definition is not None else {}

    def retry_settings(self, key: Optional[str]) -> Tuple[int, Optional[RetryPolicy]]:
        """Retry count and policy for the step configured under ``key``.

        A step-level ``retry`` block wins over the workflow-level one. A step
        ``retries`` count without its own block overrides the workflow
        policy's ``max_attempts``, and ``idempotent: false`` disables retrying
        either way.
        """
        config = self.step_config(key)
        retries = int(config.get("retries", 0) or 0)

        definition = getattr(self.workflow, "definition", None)
        if "retry" in config:
            retry_config = config["retry"]
        else:
            retry_config = definition.retry if definition is not None else None

        policy = build_policy(retry_config) if retry_config is not None else None
        if policy is not None and "retry" not in config and "retries" in config:
            policy = policy.model_copy(update={"max_attempts": retries})
        if config.get("idempotent") is False:
            policy = (policy or policy_for_retries(retries)).model_copy(update={"idempotent": False})
        return retries, policy


__all__ = ["DEFAULT_EXECUTORS", "StepExecutorCoordinator"]
