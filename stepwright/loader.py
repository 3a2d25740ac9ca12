"""Resolution of step names to runnable step objects."""

from __future__ import annotations

import hashlib
import importlib.util
import inspect
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Type

from .errors import StepExecutionError, StepNotFoundError
from .steps import AgentStep, BaseStep, PromptStep, ShellScriptStep

logger = logging.getLogger(__name__)

SHARED_DIR = "shared"
DEFAULT_PHASE = "steps"

# Configuration keys consumed by the engine rather than set on the step.
ENGINE_KEYS = frozenset(
    {"model", "path", "retries", "retry", "idempotent", "print_response", "json", "params", "coerce_to", "available_tools"}
)
ATTRIBUTE_ALIASES = {"continue": "continue_session"}

_STEP_CLASSES: Dict[str, Type[BaseStep]] = {}


def register_step_class(name: str, step_class: Type[BaseStep]) -> None:
    """Make ``step_class`` the implementation of steps called ``name``."""
    if not (inspect.isclass(step_class) and issubclass(step_class, BaseStep)):
        raise TypeError(f"{step_class!r} is not a BaseStep subclass")
    _STEP_CLASSES[name] = step_class


def unregister_step_class(name: str) -> None:
    _STEP_CLASSES.pop(name, None)


def camel_case(name: str) -> str:
    return "".join(part[:1].upper() + part[1:] for part in name.replace("-", "_").split("_") if part)


def is_inline_prompt(name: str) -> bool:
    return any(ch.isspace() for ch in name.strip())


class StepLoader:
    """Finds and instantiates steps for one workflow."""

    def __init__(self, workflow: Any, phase: str = DEFAULT_PHASE):
        self.workflow = workflow
        self.phase = phase

    @property
    def context_path(self) -> Path:
        return Path(self.workflow.context_path)

    def step_config(self, key: Optional[str]) -> Dict[str, Any]:
        definition = getattr(self.workflow, "definition", None)
        return definition.step_config(key) if definition is not None else {}

    def load(
        self,
        name: str,
        step_key: Optional[str] = None,
        agent: bool = False,
        is_last_step: bool = False,
    ) -> BaseStep:
        """Load the step called ``name``.

        Raises:
            StepNotFoundError: nothing matched; lists every path searched.
            StepExecutionError: a step file failed to import or has no step class.
        """
        config_key = step_key or name
        config = self.step_config(config_key)

        if name in _STEP_CLASSES:
            step = _STEP_CLASSES[name](self.workflow, name=name, context_path=self.context_path)
        elif is_inline_prompt(name):
            if agent:
                step = AgentStep(self.workflow, name=name, inline=True, context_path=self.context_path)
            else:
                step = PromptStep(self.workflow, name=name, context_path=self.context_path)
        else:
            step = self._load_from_disk(name, config.get("path"), agent)

        self.configure_step(step, config, is_last_step)
        return step

    # ------------------------------------------------------------------
    # Search
    def search_dirs(self, per_step_path: Optional[str] = None) -> List[Path]:
        dirs: List[Path] = []
        if per_step_path:
            path = Path(per_step_path)
            dirs.append(path if path.is_absolute() else (self.context_path / path).resolve())
        if self.phase != DEFAULT_PHASE:
            dirs.append(self.context_path / self.phase)
        dirs.append(self.context_path)
        dirs.append(self.context_path / DEFAULT_PHASE)
        dirs.append((self.context_path / ".." / SHARED_DIR).resolve())
        return dirs

    def _load_from_disk(self, name: str, per_step_path: Optional[str], agent: bool) -> BaseStep:
        dirs = self.search_dirs(per_step_path)
        searched: List[str] = []

        for directory in dirs:
            candidate = directory / f"{name}.py"
            searched.append(str(candidate))
            if candidate.is_file():
                return self.load_python_step(candidate, name)

        for directory in dirs:
            candidate = directory / f"{name}.sh"
            searched.append(str(candidate))
            if candidate.is_file():
                return ShellScriptStep(
                    self.workflow, script_path=candidate, name=name, context_path=candidate.parent
                )

        for directory in dirs:
            candidate = directory / name
            searched.append(f"{candidate}/")
            if candidate.is_dir():
                step_class = AgentStep if agent else BaseStep
                return step_class(self.workflow, name=name, context_path=candidate)

        raise StepNotFoundError(
            f"Step directory or file not found: {name}. Searched: {', '.join(searched)}",
            step_name=name,
            search_paths=searched,
        )

    def load_python_step(self, path: Path, name: str) -> BaseStep:
        logger.debug(f"Loading step file: {path}")
        digest = hashlib.md5(str(path).encode("utf-8")).hexdigest()[:8]
        module_name = f"stepwright_steps.{name}_{digest}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise StepNotFoundError(f"Failed to load step file: {path}", step_name=name, search_paths=[str(path)])

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except SyntaxError as e:
            sys.modules.pop(module_name, None)
            raise StepExecutionError(
                f"Syntax error in step file {path}: {e}", step_name=name, original_error=e
            ) from e
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise StepExecutionError(
                f"Failed to import step file {path}: {e}", step_name=name, original_error=e
            ) from e

        step_class = self.find_step_class(module, name)
        if step_class is None:
            raise StepExecutionError(
                f"Step file {path} does not define a {camel_case(name)} step class",
                step_name=name,
            )
        return step_class(self.workflow, name=name, context_path=path.parent)

    @staticmethod
    def find_step_class(module: Any, name: str) -> Optional[Type[BaseStep]]:
        candidate = getattr(module, camel_case(name), None)
        if inspect.isclass(candidate) and issubclass(candidate, BaseStep):
            return candidate
        defined = [
            obj
            for obj in vars(module).values()
            if inspect.isclass(obj) and issubclass(obj, BaseStep) and obj.__module__ == module.__name__
        ]
        return defined[0] if len(defined) == 1 else None

    # ------------------------------------------------------------------
    # Configuration
    def determine_model(self, config: Dict[str, Any]) -> str:
        definition = getattr(self.workflow, "definition", None)
        return (
            config.get("model")
            or (definition.model if definition is not None else None)
            or self.workflow.default_model
        )

    def configure_step(self, step: BaseStep, config: Dict[str, Any], is_last_step: bool = False) -> None:
        step.model = self.determine_model(config)
        step.resource = getattr(self.workflow, "resource", None)

        if "print_response" in config:
            step.print_response = bool(config["print_response"])
        elif is_last_step:
            step.print_response = True
        if "json" in config:
            step.json = bool(config["json"])
        if "params" in config:
            step.params = dict(config["params"] or {})
        if "coerce_to" in config:
            step.coerce_to = config["coerce_to"]
        if "available_tools" in config:
            step.available_tools = list(config["available_tools"] or [])

        for key, value in config.items():
            if key in ENGINE_KEYS:
                continue
            attribute = ATTRIBUTE_ALIASES.get(key, key)
            if attribute.startswith("_") or not hasattr(step, attribute):
                continue
            if callable(getattr(step, attribute)):
                continue
            setattr(step, attribute, value)


__all__ = ["StepLoader", "register_step_class", "unregister_step_class", "camel_case"]
