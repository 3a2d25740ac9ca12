"""Executors for control-flow steps: loops, branches and user input."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict

from ..classifier import leading_key
from ..contracts import ExecutionContext
from ..errors import ConfigurationError
from ..steps import CaseStep, ConditionalStep, EachStep, InputStep, RepeatStep
from ..steps.iteration import DEFAULT_MAX_ITERATIONS
from .base import StepExecutor

logger = logging.getLogger(__name__)

PREVIOUS_KEY = "previous"
_UNSAFE = re.compile(r"[^a-zA-Z0-9_]")


def sanitize(expression: Any, limit: int | None = None) -> str:
    text = _UNSAFE.sub("_", str(expression))
    return text[:limit] if limit is not None else text


def nested_context(context: ExecutionContext) -> ExecutionContext:
    """Context for a construct's body, without the construct's own options."""
    return context.evolve(
        step_key=None, exit_on_error=None, is_last_step=False, retries=0, retry_policy=None
    )


class IterationExecutor(StepExecutor):
    """``each`` and ``repeat`` loops."""

    def execute(self, step: Dict[str, Any], context: ExecutionContext) -> Any:
        if leading_key(step) == "repeat":
            return self.execute_repeat(step["repeat"], context)
        return self.execute_each(step, context)

    def execute_repeat(self, config: Any, context: ExecutionContext) -> Any:
        logger.info(f"Executing repeat step: {config!r}")
        if not isinstance(config, dict):
            raise ConfigurationError("Invalid 'repeat' step format. Expected a mapping")
        steps = config.get("steps")
        until_condition = config.get("until")
        if not steps:
            raise ConfigurationError("Missing 'steps' in repeat configuration")
        if until_condition is None:
            raise ConfigurationError("Missing 'until' condition in repeat configuration")

        repeat_step = RepeatStep(
            self.workflow,
            self.workflow_executor,
            steps,
            until_condition=until_condition,
            max_iterations=config.get("max_iterations") or DEFAULT_MAX_ITERATIONS,
            context=nested_context(context),
            name=f"repeat_{len(self.memory.output_keys())}",
            context_path=self.workflow.context_path,
        )
        repeat_step.coerce_to = config.get("coerce_to")
        results = repeat_step.call()
        return self.store(f"repeat_{sanitize(until_condition)}", results)

    def execute_each(self, step: Dict[str, Any], context: ExecutionContext) -> Any:
        logger.info(f"Executing each step: {step!r}")
        collection_expr = step.get("each")
        variable_name = step.get("as")
        steps = step.get("steps")
        if "as" not in step or "steps" not in step:
            raise ConfigurationError(
                "Invalid 'each' step format. 'as' and 'steps' must be at the same level as 'each'"
            )
        if collection_expr is None:
            raise ConfigurationError("Missing collection expression in each configuration")
        if not variable_name:
            raise ConfigurationError("Missing 'as' variable name in each configuration")

        name = f"each_{variable_name}"
        each_step = EachStep(
            self.workflow,
            self.workflow_executor,
            collection_expr,
            str(variable_name),
            steps,
            context=nested_context(context),
            name=name,
            context_path=self.workflow.context_path,
        )
        results = each_step.call()
        return self.store(name, results)


class ConditionalExecutor(StepExecutor):
    """``if``/``unless`` with ``then`` and optional ``else`` branches."""

    def execute(self, step: Dict[str, Any], context: ExecutionContext) -> Any:
        logger.info(f"Executing conditional step: {step!r}")
        keyword = "unless" if "unless" in step else "if"
        condition = step.get(keyword)
        conditional_step = ConditionalStep(
            self.workflow,
            self.workflow_executor,
            step,
            context=nested_context(context),
            name=f"conditional_{sanitize(condition, 21)}",
            context_path=self.workflow.context_path,
        )
        result = conditional_step.call()
        return self.store(f"{keyword}_{sanitize(condition, 31)}", result)


class CaseExecutor(StepExecutor):
    """``case`` with ``when`` clauses and an optional ``else``."""

    def execute(self, step: Dict[str, Any], context: ExecutionContext) -> Any:
        logger.info(f"Executing case step: {step!r}")
        expression = step.get("case")
        if expression is None:
            raise ConfigurationError("Missing 'case' expression in case configuration")
        if not step.get("when"):
            raise ConfigurationError("Missing 'when' clauses in case configuration")

        name = f"case_{sanitize(expression, 31)}"
        case_step = CaseStep(
            self.workflow,
            self.workflow_executor,
            step,
            context=nested_context(context),
            name=name,
            context_path=self.workflow.context_path,
        )
        return self.store(name, case_step.call())


class InputExecutor(StepExecutor):
    """Interactive ``input`` steps."""

    def execute(self, step: Dict[str, Any], context: ExecutionContext) -> Any:
        config = step.get("input")
        if not isinstance(config, dict):
            raise ConfigurationError("Invalid 'input' step format. Expected a mapping")
        config = dict(config)
        if config.get("prompt"):
            config["prompt"] = self.interpolate(config["prompt"])

        input_step = InputStep(
            self.workflow,
            config,
            name=config.get("name") or f"input_{len(self.memory.output_keys())}",
            context_path=self.workflow.context_path,
        )
        result = input_step.call()
        if input_step.step_name:
            self.state_manager.save_state(input_step.step_name, result)
        return self.store(PREVIOUS_KEY, result)


__all__ = [
    "CaseExecutor",
    "ConditionalExecutor",
    "InputExecutor",
    "IterationExecutor",
    "sanitize",
]
