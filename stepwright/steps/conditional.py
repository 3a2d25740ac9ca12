"""Branching constructs: ``if``/``unless`` and ``case``."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..contracts import ExecutionContext
from ..errors import ConfigurationError
from ..expressions import is_command, is_expression
from .base import BaseStep

logger = logging.getLogger(__name__)


def _branch(steps: Any, label: str, step_name: str) -> List[Any]:
    if steps is None:
        return []
    if not isinstance(steps, list):
        raise ConfigurationError(f"'{label}' of {step_name} must be a list of steps", step_name=step_name)
    return steps


def case_key(value: Any) -> str:
    """Normalise a case value or ``when`` key for comparison."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value).strip()


class ConditionalStep(BaseStep):
    def __init__(
        self,
        workflow: Any,
        executor: Any,
        config: Dict[str, Any],
        context: Optional[ExecutionContext] = None,
        **kwargs: Any,
    ):
        super().__init__(workflow, **kwargs)
        self.executor = executor
        self.context = context or ExecutionContext()
        self.is_unless = "unless" in config
        self.condition = config.get("unless") if self.is_unless else config.get("if")
        if self.condition is None:
            raise ConfigurationError("Missing condition in conditional configuration", step_name=self.name)
        if "then" not in config:
            raise ConfigurationError("Missing 'then' steps in conditional configuration", step_name=self.name)
        self.then_steps = _branch(config.get("then"), "then", self.name)
        self.else_steps = _branch(config.get("else"), "else", self.name)

    def evaluate_condition(self) -> bool:
        return bool(self.workflow.expressions.evaluate(self.condition, for_condition=True))

    def call(self) -> Dict[str, Any]:
        condition_result = self.evaluate_condition()
        if self.is_unless:
            condition_result = not condition_result

        steps = self.then_steps if condition_result else self.else_steps
        if steps:
            self.executor.execute_steps(steps, self.context)
        return {
            "condition_result": condition_result,
            "branch_executed": "then" if condition_result else "else",
        }


class CaseStep(BaseStep):
    def __init__(
        self,
        workflow: Any,
        executor: Any,
        config: Dict[str, Any],
        context: Optional[ExecutionContext] = None,
        **kwargs: Any,
    ):
        super().__init__(workflow, **kwargs)
        self.executor = executor
        self.context = context or ExecutionContext()
        self.case_expression = config.get("case")
        when = config.get("when") or {}
        if not isinstance(when, dict):
            raise ConfigurationError("'when' of a case step must be a mapping", step_name=self.name)
        self.when_clauses = {key: _branch(steps, f"when {key}", self.name) for key, steps in when.items()}
        self.else_steps = _branch(config.get("else"), "else", self.name)

    def evaluate_case_expression(self) -> Any:
        expression = self.case_expression
        if expression is None:
            return None
        if not isinstance(expression, str):
            return expression
        evaluator = self.workflow.expressions
        if is_expression(expression) or is_command(expression):
            return evaluator.evaluate(expression)
        return evaluator.evaluate_step_or_value(self.executor.interpolate(expression))

    def find_matching_when_clause(self, case_value: Any) -> Optional[Any]:
        target = case_key(case_value)
        for key in self.when_clauses:
            if case_key(key) == target:
                return key
        return None

    def call(self) -> Dict[str, Any]:
        case_value = self.evaluate_case_expression()
        matched = self.find_matching_when_clause(case_value)
        steps = self.when_clauses[matched] if matched is not None else self.else_steps
        if steps:
            self.executor.execute_steps(steps, self.context)

        if matched is not None:
            branch = str(matched)
        else:
            branch = "else" if steps else "none"
        return {"case_value": case_value, "matched_when": matched, "branch_executed": branch}
