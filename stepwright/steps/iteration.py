"""Loop constructs: ``each`` over a collection and ``repeat ... until``."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from ..contracts import ExecutionContext
from ..errors import ConfigurationError
from ..expressions import coerce, is_command, is_expression
from .base import BaseStep

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 100


class BaseIterationStep(BaseStep):
    def __init__(
        self,
        workflow: Any,
        executor: Any,
        steps: List[Any],
        context: Optional[ExecutionContext] = None,
        **kwargs: Any,
    ):
        super().__init__(workflow, **kwargs)
        if not isinstance(steps, list):
            raise ConfigurationError(f"'steps' of {self.name} must be a list", step_name=self.name)
        self.executor = executor
        self.steps = steps
        self.context = context or ExecutionContext()

    @property
    def evaluator(self):
        return self.workflow.expressions

    def process_iteration_input(self, value: Any, coerce_to: Optional[str] = None) -> Any:
        """Resolve a loop input and coerce it.

        ``{{expr}}`` and ``$(cmd)`` default to boolean coercion; a bare token
        names a prior output or, failing that, a step to execute, and
        defaults to model-style boolean coercion.
        """
        if not isinstance(value, str):
            return coerce(value, coerce_to or "boolean")

        if is_expression(value):
            result = self.evaluator.evaluate_expression(value)
            return coerce(result, coerce_to or "boolean")

        if is_command(value):
            coerce_to = coerce_to or "boolean"
            command = self.executor.interpolate(value)
            if coerce_to == "boolean":
                return self.evaluator.evaluate_command(command, for_condition=True)
            return coerce(self.evaluator.evaluate_command(command), coerce_to)

        coerce_to = coerce_to or "llm_boolean"
        token = value.strip()
        if self.memory.has_output(token):
            result = self.memory.get_output(token)
        else:
            result = self.executor.execute_step(token, self.context)
        return coerce(result, coerce_to)

    def execute_nested_steps(self) -> List[Any]:
        return self.executor.execute_steps(self.steps, self.context)

    def save_iteration_state(self, checkpoint: str) -> None:
        if self.executor.state_manager is not None:
            self.executor.state_manager.save_state(checkpoint)


class EachStep(BaseIterationStep):
    def __init__(
        self,
        workflow: Any,
        executor: Any,
        collection_expr: Any,
        variable_name: str,
        steps: List[Any],
        **kwargs: Any,
    ):
        super().__init__(workflow, executor, steps, **kwargs)
        self.collection_expr = collection_expr
        self.variable_name = variable_name

    def call(self) -> List[Any]:
        collection = self.process_iteration_input(self.collection_expr, coerce_to="iterable")
        logger.info(f"Starting each loop over collection with {len(collection)} items")

        results = []
        for index, item in enumerate(collection):
            logger.info(f"Each loop iteration {index + 1} with {self.variable_name}={item!r}")
            self.memory.set_output(self.variable_name, item)
            results.append(self.execute_nested_steps())
            self.save_iteration_state(f"{self.name}_item_{index}")

        logger.info(f"Each loop completed with {len(collection)} iterations")
        return results


class RepeatStep(BaseIterationStep):
    def __init__(
        self,
        workflow: Any,
        executor: Any,
        steps: List[Any],
        until_condition: Any,
        max_iterations: Any = DEFAULT_MAX_ITERATIONS,
        **kwargs: Any,
    ):
        super().__init__(workflow, executor, steps, **kwargs)
        self.until_condition = until_condition
        try:
            self.max_iterations = max(int(max_iterations), 1)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"Invalid max_iterations: {max_iterations!r}", step_name=self.name
            ) from None

    def condition_met(self) -> bool:
        return bool(self.process_iteration_input(self.until_condition, coerce_to=self.coerce_to))

    def call(self) -> List[Any]:
        logger.info(f"Starting repeat loop with max_iterations: {self.max_iterations}")
        iteration = 0
        results = []
        while not self.condition_met() and iteration < self.max_iterations:
            logger.info(f"Repeat loop iteration {iteration + 1}")
            results.append(self.execute_nested_steps())
            iteration += 1
            self.save_iteration_state(f"{self.name}_iteration_{iteration}")

        if iteration >= self.max_iterations:
            logger.warning(f"Repeat loop reached maximum iterations ({self.max_iterations})")
        else:
            logger.info(f"Repeat loop condition satisfied after {iteration} iterations")
        return results
