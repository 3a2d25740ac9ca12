"""Interactive input steps."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Dict, List, Optional, Protocol

import typer

from ..errors import ConfigurationError, StepExecutionError
from .base import BaseStep

logger = logging.getLogger(__name__)

INPUT_TYPES = ("text", "boolean", "choice", "password")
_BOOLEAN_DEFAULTS = {True: True, "true": True, "yes": True, False: False, "false": False, "no": False}


class InputPrompter(Protocol):
    def ask(self, text: str, default: Any = None) -> str:
        ...

    def confirm(self, text: str, default: Optional[bool] = None) -> bool:
        ...

    def choose(self, text: str, options: List[Any], default: Any = None) -> Any:
        ...

    def password(self, text: str) -> str:
        ...


class TyperPrompter:
    """Terminal prompts through typer."""

    def ask(self, text: str, default: Any = None) -> str:
        return typer.prompt(text, default=default if default is not None else "", show_default=default is not None)

    def confirm(self, text: str, default: Optional[bool] = None) -> bool:
        return typer.confirm(text, default=bool(default))

    def choose(self, text: str, options: List[Any], default: Any = None) -> Any:
        labels = [str(option) for option in options]
        for index, label in enumerate(labels, start=1):
            typer.echo(f"  {index}. {label}")
        while True:
            answer = typer.prompt(text, default=str(default) if default is not None else None)
            if answer in labels:
                return options[labels.index(answer)]
            if answer.isdigit() and 1 <= int(answer) <= len(options):
                return options[int(answer) - 1]
            typer.echo(f"Please choose one of: {', '.join(labels)}", err=True)

    def password(self, text: str) -> str:
        return typer.prompt(text, hide_input=True, default="", show_default=False)


class InputStep(BaseStep):
    """Collects a value from the user.

    Config keys: ``prompt`` (required), ``name``, ``type`` (text, boolean,
    choice, password), ``required``, ``default``, ``timeout`` and ``options``.
    """

    def __init__(
        self,
        workflow: Any,
        config: Dict[str, Any],
        prompter: Optional[InputPrompter] = None,
        **kwargs: Any,
    ):
        super().__init__(workflow, **kwargs)
        self.prompter = prompter or getattr(workflow, "prompter", None) or TyperPrompter()
        self.parse_config(config)

    def parse_config(self, config: Dict[str, Any]) -> None:
        if not isinstance(config, dict) or not config.get("prompt"):
            raise ConfigurationError("Missing 'prompt' in input configuration", step_name=self.name)
        self.prompt_text = str(config["prompt"])
        self.step_name = config.get("name")
        self.type = config.get("type", "text")
        self.required = bool(config.get("required", False))
        self.default = config.get("default")
        self.timeout = config.get("timeout")
        self.options = config.get("options")

        if self.type not in INPUT_TYPES:
            raise ConfigurationError(f"Unknown input type: {self.type}", step_name=self.name)
        if self.type == "choice" and not self.options:
            raise ConfigurationError("Missing 'options' for choice type input", step_name=self.name)
        if self.type == "boolean" and self.default is not None and self.default not in _BOOLEAN_DEFAULTS:
            raise ConfigurationError(
                f"Invalid default value for boolean type: {self.default}", step_name=self.name
            )

    def call(self) -> Any:
        readers: Dict[str, Callable[[], Any]] = {
            "boolean": self.prompt_boolean,
            "choice": self.prompt_choice,
            "password": self.prompt_password,
            "text": self.prompt_text_input,
        }
        try:
            result = self.with_timeout(readers[self.type])
        except FutureTimeout:
            result = self.handle_timeout()

        if self.step_name:
            self.memory.set_output(self.step_name, result)
        return result

    def with_timeout(self, reader: Callable[[], Any]) -> Any:
        if not self.timeout:
            return reader()
        pool = ThreadPoolExecutor(max_workers=1)
        try:
            return pool.submit(reader).result(timeout=float(self.timeout))
        finally:
            pool.shutdown(wait=False)

    def prompt_text_input(self) -> str:
        while True:
            result = self.prompter.ask(self.prompt_text, default=self.default)
            if self.required and not str(result or "").strip():
                typer.echo("This field is required. Please provide a value.", err=True)
                continue
            return result

    def prompt_boolean(self) -> bool:
        default = _BOOLEAN_DEFAULTS.get(self.default) if self.default is not None else None
        return self.prompter.confirm(self.prompt_text, default=default)

    def prompt_choice(self) -> Any:
        return self.prompter.choose(self.prompt_text, list(self.options), default=self.default)

    def prompt_password(self) -> str:
        while True:
            result = self.prompter.password(self.prompt_text)
            if self.required and not str(result or "").strip():
                typer.echo("This field is required. Please provide a value.", err=True)
                continue
            return result

    def handle_timeout(self) -> Any:
        logger.warning(f"Input timed out after {self.timeout} seconds")
        if self.default is not None:
            logger.warning(f"Using default value: {self.default}")
            return self.default
        if self.required:
            raise StepExecutionError("Required input timed out with no default value", step_name=self.name)
        return None
