"""The running workflow: identity, memory and collaborators."""

from __future__ import annotations

import importlib
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from .commands import CommandExecutor
from .config import EngineConfig, WorkflowDefinition, load_workflow
from .contracts import WorkflowMemory
from .errors import ConfigurationError
from .events import EventNotifier, default_notifier
from .expressions import ExpressionEvaluator, is_command
from .llm import CompletionClient, PydanticAICompletionClient
from .steps.agent import CommandAgentRunner

logger = logging.getLogger(__name__)


def resource_type(resource: Any) -> Optional[str]:
    """Rough classification of a workflow ``target`` for reporting."""
    if resource is None:
        return None
    text = str(resource).strip()
    if not text:
        return None
    if is_command(text):
        return "command"
    if text.startswith(("http://", "https://")):
        return "url"
    if any(ch in text for ch in "*?["):
        return "glob"
    if Path(text).is_dir():
        return "directory"
    return "file"


def import_tool(path: str) -> Callable[..., Any]:
    """Import ``package.module:function`` (or ``package.module.function``)."""
    module_name, _, attribute = path.replace(":", ".").rpartition(".")
    if not module_name:
        raise ConfigurationError(f"Invalid tool reference: {path}")
    try:
        module = importlib.import_module(module_name)
        tool = getattr(module, attribute)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Cannot load tool {path}: {e}", original_error=e) from e
    if not callable(tool):
        raise ConfigurationError(f"Tool {path} is not callable")
    return tool


class Workflow:
    """State and collaborators for one run of a workflow document.

    Steps reach everything they need through this object: the shared
    :class:`WorkflowMemory`, the expression evaluator and the completion,
    agent and input seams.
    """

    def __init__(
        self,
        path: Optional[str | Path] = None,
        definition: Optional[WorkflowDefinition] = None,
        config: Optional[EngineConfig] = None,
        session_name: Optional[str] = None,
        session_timestamp: Optional[str] = None,
        resource: Any = None,
        completion: Optional[CompletionClient] = None,
        agent_runner: Any = None,
        prompter: Any = None,
        tools: Optional[Dict[str, Callable[..., Any]]] = None,
        notifier: Optional[EventNotifier] = None,
        verbose: bool = False,
        pause_step_name: Optional[str] = None,
    ):
        self.path = str(Path(path).resolve()) if path else None
        self.definition = definition or WorkflowDefinition()
        self.config = config or EngineConfig()
        self.name = self.definition.name or (Path(path).parent.name if path else "unnamed")
        self.session_name = session_name
        self.session_timestamp = session_timestamp
        self.context_path = Path(self.path).parent if self.path else Path.cwd()
        self.resource = resource if resource is not None else self.definition.target
        self.verbose = verbose
        self.pause_step_name = pause_step_name or self.definition.pause
        self.notifier = notifier or default_notifier

        self.memory = WorkflowMemory()
        self.command_executor = CommandExecutor()
        self.expressions = ExpressionEvaluator(
            self.memory, workflow=self, command_executor=self.command_executor, verbose=verbose
        )

        self._completion = completion
        self._agent_runner = agent_runner
        self.prompter = prompter
        self.tools: Dict[str, Callable[..., Any]] = {}
        for reference in self.definition.tools:
            if isinstance(reference, str):
                self.register_tool(reference.replace(":", ".").rpartition(".")[2], import_tool(reference))
        for name, tool in (tools or {}).items():
            self.register_tool(name, tool)

    @classmethod
    def from_file(cls, path: str | Path, **kwargs: Any) -> "Workflow":
        return cls(path=path, definition=load_workflow(path), **kwargs)

    # ------------------------------------------------------------------
    @property
    def default_model(self) -> str:
        return self.config.default_model

    @property
    def resource_type(self) -> Optional[str]:
        return resource_type(self.resource)

    @property
    def output(self) -> Dict[str, Any]:
        return self.memory.output

    @property
    def final_output(self) -> str:
        return self.memory.final_output

    @property
    def completion(self) -> CompletionClient:
        if self._completion is None:
            self._completion = PydanticAICompletionClient(self.default_model)
        return self._completion

    @property
    def agent_runner(self) -> Any:
        if self._agent_runner is None:
            self._agent_runner = CommandAgentRunner(self.config.agent_command)
        return self._agent_runner

    def register_tool(self, name: str, tool: Callable[..., Any]) -> None:
        self.tools[name] = tool

    def resolve_tools(self, available_tools: Optional[Iterable[str]] = None) -> List[Callable[..., Any]]:
        """Tools exposed to a completion: all registered ones, or the named subset."""
        if available_tools is None:
            return list(self.tools.values())
        resolved = []
        for name in available_tools:
            if name not in self.tools:
                raise ConfigurationError(f"Unknown tool: {name}")
            resolved.append(self.tools[name])
        return resolved

    def chat_completion(
        self,
        model: Optional[str] = None,
        json: bool = False,
        params: Optional[Dict[str, Any]] = None,
        available_tools: Optional[Iterable[str]] = None,
    ) -> Any:
        """Send the transcript to the model and append its reply."""
        model = model or self.default_model
        tools = self.resolve_tools(available_tools)
        started = time.monotonic()
        self.notifier.instrument("chat_completion.start", model=model, parameters=params or {})
        try:
            result = self.completion.complete(
                self.memory.transcript, model=model, json=json, params=params, tools=tools
            )
        except Exception as e:
            self.notifier.instrument(
                "chat_completion.error",
                model=model,
                error=type(e).__name__,
                message=str(e),
                execution_time=time.monotonic() - started,
            )
            raise

        self.notifier.instrument(
            "chat_completion.complete",
            model=model,
            success=True,
            execution_time=time.monotonic() - started,
            response_size=len(str(result)),
        )
        self.memory.append_message("assistant", result)
        return result

    def __repr__(self) -> str:
        return f"Workflow(name={self.name!r}, path={self.path!r})"


__all__ = ["Workflow", "import_tool", "resource_type"]
