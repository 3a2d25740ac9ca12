"""Expression evaluation for workflow steps.

Three sub-expression forms are recognised wherever a control construct takes
a condition or a value:

* ``{{expr}}`` is a sandboxed Jinja expression evaluated in workflow scope;
* ``$(cmd)`` is a shell command (exit status or stripped output);
* anything else is a reference to a prior step's output, or a literal.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterator, Mapping, Optional

from jinja2 import StrictUndefined, Undefined, UndefinedError
from jinja2.sandbox import SandboxedEnvironment

from .commands import CommandExecutor
from .contracts import DotAccessDict, WorkflowMemory
from .errors import InterpolationError

logger = logging.getLogger(__name__)

_INTERPOLATION = re.compile(r"\{\{([^}]+)\}\}")

SAFE_GLOBALS = {
    "abs": abs, "all": all, "any": any, "bool": bool, "float": float,
    "int": int, "len": len, "list": list, "max": max, "min": min,
    "round": round, "sorted": sorted, "str": str, "sum": sum,
}

_environment = SandboxedEnvironment(undefined=StrictUndefined)
_environment.globals.update(SAFE_GLOBALS)


def is_expression(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    text = value.strip()
    return text.startswith("{{") and text.endswith("}}")


def is_command(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    text = value.strip()
    return text.startswith("$(") and text.endswith(")")


def extract_expression(value: str) -> str:
    if not is_expression(value):
        return value
    return value.strip()[2:-2].strip()


class WorkflowScope(Mapping[str, Any]):
    """Name lookup used when evaluating ``{{...}}`` expressions.

    Resolution order: iteration variables, then ``output``, ``metadata`` and
    ``workflow``, then the keys of the output map.
    """

    def __init__(
        self,
        memory: WorkflowMemory,
        workflow: Any = None,
        variables: Optional[Mapping[str, Any]] = None,
    ):
        self._memory = memory
        self._workflow = workflow
        self._variables = dict(variables or {})

    def __getitem__(self, key: str) -> Any:
        if key in self._variables:
            return _wrap(self._variables[key])
        if key == "output":
            return DotAccessDict(self._memory.output)
        if key == "metadata":
            return DotAccessDict(self._memory.metadata)
        if key == "workflow":
            return self._workflow
        if self._memory.has_output(key):
            return _wrap(self._memory.get_output(key))
        raise KeyError(key)

    def __iter__(self) -> Iterator[str]:
        seen = set()
        for key in [*self._variables, "output", "metadata", "workflow", *self._memory.output_keys()]:
            if key not in seen:
                seen.add(key)
                yield key

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __contains__(self, key: object) -> bool:
        try:
            self[key]  # type: ignore[index]
        except KeyError:
            return False
        return True


def _wrap(value: Any) -> Any:
    if isinstance(value, Mapping) and not isinstance(value, DotAccessDict):
        return DotAccessDict(value)
    return value


def evaluate_in_scope(expression: str, scope: WorkflowScope) -> Any:
    """Evaluate ``expression`` in a sandboxed Jinja environment.

    Raises:
        InterpolationError: the expression could not be compiled or evaluated.
    """
    try:
        compiled = _environment.compile_expression(expression, undefined_to_none=False)
        result = compiled(scope)
        if isinstance(result, Undefined):
            raise UndefinedError(f"'{expression}' is undefined")
    except Exception as e:
        raise InterpolationError(f"{type(e).__name__}: {e}", original_error=e) from e
    return result


def truthy(value: Any) -> bool:
    """Permissive boolean coercion for step output references."""
    if value is None or value is False:
        return False
    if isinstance(value, str) and value in ("", "false"):
        return False
    return True


_EXPLICIT_TRUE = re.compile(r"^(yes|y|true|t|1)$", re.IGNORECASE)
_EXPLICIT_FALSE = re.compile(r"^(no|n|false|f|0)$", re.IGNORECASE)
_AFFIRMATIVE = re.compile(
    r"\b(yes|true|correct|affirmative|confirmed|indeed|right|positive|agree|"
    r"definitely|certainly|absolutely)\b"
)
_NEGATIVE = re.compile(r"\b(no|false|incorrect|negative|denied|wrong|disagree|never)\b")


def llm_boolean(value: Any) -> bool:
    """Interpret free-form model output as a yes/no answer.

    Ambiguous answers (both or neither polarity present) are false.
    """
    if value is True:
        return True
    if value is False or value is None:
        return False

    text = str(value).strip().lower()
    if _EXPLICIT_TRUE.match(text):
        return True
    if _EXPLICIT_FALSE.match(text):
        return False

    affirmative = bool(_AFFIRMATIVE.search(text))
    negative = bool(_NEGATIVE.search(text))
    if affirmative and negative:
        logger.warning(
            f"Ambiguous model response for boolean conversion "
            f"(contains both affirmative and negative terms): '{str(value).strip()}'"
        )
        return False
    if affirmative:
        return True
    if not negative:
        logger.warning(
            f"Ambiguous model response for boolean conversion "
            f"(no clear boolean indicators found): '{str(value).strip()}'"
        )
    return False


def to_iterable(value: Any) -> list:
    """Coerce a value to a list of items.

    Strings holding a JSON array are decoded; other strings split on lines.
    """
    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                decoded = json.loads(text)
            except ValueError:
                decoded = None
            if isinstance(decoded, list):
                return decoded
        return [line for line in text.split("\n") if line.strip()]
    if isinstance(value, Mapping):
        return list(value.items())
    try:
        return list(value)
    except TypeError:
        return [value]


COERCIONS = {
    "boolean": truthy,
    "llm_boolean": llm_boolean,
    "iterable": to_iterable,
}


def coerce(value: Any, coerce_to: Optional[str]) -> Any:
    if not coerce_to:
        return value
    try:
        converter = COERCIONS[str(coerce_to)]
    except KeyError:
        raise ValueError(f"Unknown coercion: {coerce_to}") from None
    return converter(value)


class ExpressionEvaluator:
    """Evaluates interpolations and sub-expressions against workflow memory."""

    def __init__(
        self,
        memory: WorkflowMemory,
        workflow: Any = None,
        command_executor: Optional[CommandExecutor] = None,
        verbose: bool = False,
    ):
        self.memory = memory
        self.workflow = workflow
        self.command_executor = command_executor or CommandExecutor()
        self.verbose = verbose

    def scope(self, variables: Optional[Mapping[str, Any]] = None) -> WorkflowScope:
        return WorkflowScope(self.memory, self.workflow, variables)

    def interpolate(self, text: Any, variables: Optional[Mapping[str, Any]] = None) -> Any:
        """Replace every ``{{expr}}`` in ``text`` with its evaluated value.

        Failing expressions are logged and left in place. Inside a ``$(...)``
        command, backticks in substituted values are escaped.
        """
        if not isinstance(text, str) or "{{" not in text or "}}" not in text:
            return text

        shell = is_command(text)
        scope = self.scope(variables)

        def substitute(match: re.Match) -> str:
            expression = match.group(1).strip()
            try:
                result = evaluate_in_scope(expression, scope)
            except InterpolationError as e:
                logger.error(
                    f"Error interpolating {{{{{expression}}}}}: {e}. "
                    f"This variable is not defined in the workflow context."
                )
                return match.group(0)
            rendered = "" if result is None else str(result)
            if shell:
                rendered = rendered.replace("`", "\\`")
            return rendered

        return _INTERPOLATION.sub(substitute, text)

    def evaluate_expression(
        self, expression: str, variables: Optional[Mapping[str, Any]] = None
    ) -> Any:
        expr = extract_expression(expression)
        try:
            return evaluate_in_scope(expr, self.scope(variables))
        except InterpolationError as e:
            logger.warning(f"Error evaluating expression '{expr}': {e}")
            return None

    def evaluate_command(self, command: str, for_condition: bool = False) -> Any:
        """Run ``$(cmd)``; exit status for conditions, stripped output otherwise."""
        try:
            output = self.command_executor.execute(command.strip(), exit_on_error=False)
        except Exception as e:
            logger.warning(f"Error executing command '{command}': {e}")
            return False if for_condition else None

        if self.verbose:
            logger.info(f"Evaluating command: {command}\nCommand output:\n{output}")

        if for_condition:
            return "[Exit status:" not in output
        return output.strip()

    def evaluate_step_or_value(self, token: Any, for_condition: bool = False) -> Any:
        key = str(token).strip() if isinstance(token, str) else token
        if isinstance(key, str) and self.memory.has_output(key):
            result = self.memory.get_output(key)
            return truthy(result) if for_condition else result

        if for_condition:
            if isinstance(token, bool):
                return token
            return str(token).strip().lower() == "true"
        return token

    def evaluate(
        self,
        value: Any,
        for_condition: bool = False,
        variables: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Three-way evaluation of a condition or value sub-expression."""
        if is_expression(value):
            result = self.evaluate_expression(value, variables)
            return truthy(result) if for_condition else result
        if is_command(value):
            return self.evaluate_command(self.interpolate(value, variables), for_condition)
        return self.evaluate_step_or_value(value, for_condition)


__all__ = [
    "COERCIONS",
    "ExpressionEvaluator",
    "WorkflowScope",
    "coerce",
    "evaluate_in_scope",
    "extract_expression",
    "is_command",
    "is_expression",
    "llm_boolean",
    "to_iterable",
    "truthy",
]
