"""Base class for workflow steps backed by a prompt directory."""

from __future__ import annotations

import inspect
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import BaseLoader, Environment, TemplateError

from ..config import DEFAULT_MODEL
from ..contracts import DotAccessDict
from ..errors import StepExecutionError, StepNotFoundError
from ..expressions import coerce

logger = logging.getLogger(__name__)

PROMPT_FILE = "prompt.md"
OUTPUT_TEMPLATE = "output.txt"

_template_env = Environment(
    loader=BaseLoader(),
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
)


def snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


class BaseStep:
    """A step that sends its sidecar ``prompt.md`` to the model.

    Subclasses override :meth:`call`. Attributes set here can be overridden
    per step from the workflow document.
    """

    def __init__(
        self,
        workflow: Any,
        name: Optional[str] = None,
        context_path: Optional[str | Path] = None,
        model: Optional[str] = None,
    ):
        self.workflow = workflow
        self.name = name or snake_case(type(self).__name__)
        self.context_path = Path(context_path) if context_path else self._default_context_path()
        self.model = model or DEFAULT_MODEL
        self.print_response = False
        self.json = False
        self.params: Dict[str, Any] = {}
        self.coerce_to: Optional[str] = None
        self.available_tools: Optional[List[str]] = None
        self.resource = getattr(workflow, "resource", None)

    def _default_context_path(self) -> Path:
        try:
            return Path(inspect.getfile(type(self))).parent
        except (TypeError, OSError):
            return Path.cwd()

    def call(self) -> Any:
        self.prompt(self.read_sidecar_prompt())
        result = self.chat_completion()
        return self.apply_coercion(result)

    # ------------------------------------------------------------------
    # Helpers available to subclasses
    @property
    def memory(self):
        return self.workflow.memory

    def prompt(self, text: str) -> None:
        self.memory.append_message("user", text)

    def chat_completion(
        self,
        print_response: Optional[bool] = None,
        json: Optional[bool] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        print_response = self.print_response if print_response is None else print_response
        json = self.json if json is None else json
        params = self.params if params is None else params

        result = self.workflow.chat_completion(
            model=self.model,
            json=json,
            params=params,
            available_tools=self.available_tools,
        )
        self.process_output(result, print_response=print_response)
        return result

    def template_variables(self, **extra: Any) -> Dict[str, Any]:
        output = self.memory.output
        variables: Dict[str, Any] = {
            key: value for key, value in output.items() if isinstance(key, str) and key.isidentifier()
        }
        variables.update(
            step=self,
            workflow=self.workflow,
            output=DotAccessDict(output),
            metadata=DotAccessDict(self.memory.metadata),
            resource=self.resource,
        )
        variables.update(extra)
        return variables

    def render(self, template: str, **extra: Any) -> str:
        try:
            return _template_env.from_string(template).render(self.template_variables(**extra))
        except TemplateError as e:
            raise StepExecutionError(
                f"Failed to render template for step '{self.name}': {e}",
                step_name=self.name,
                original_error=e,
            ) from e

    def read_sidecar_prompt(self) -> str:
        candidates = [self.context_path / PROMPT_FILE, self.context_path / f"{self.name}.md"]
        for path in candidates:
            if path.is_file():
                return self.render(path.read_text(encoding="utf-8"))
        raise StepNotFoundError(
            f"Prompt file not found for step '{self.name}'",
            step_name=self.name,
            search_paths=[str(p) for p in candidates],
        )

    def process_output(self, response: Any, print_response: bool) -> None:
        if not print_response:
            return
        template = self.context_path / OUTPUT_TEMPLATE
        if template.is_file():
            rendered = self.render(template.read_text(encoding="utf-8"), response=response)
            self.memory.append_final_output(rendered)
        else:
            self.memory.append_final_output(response)

    def apply_coercion(self, result: Any) -> Any:
        return coerce(result, self.coerce_to)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


__all__ = ["BaseStep", "PROMPT_FILE", "OUTPUT_TEMPLATE", "snake_case"]
