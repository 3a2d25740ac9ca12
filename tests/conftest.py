from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest
import yaml

from stepwright.events import EventNotifier
from stepwright.executor import WorkflowExecutor
from stepwright.persistence import reset_state_repository
from stepwright.workflow import Workflow


class FakeCompletion:
    """Scripted completion client.

    ``responses`` is either a list consumed in order or a callable receiving
    the transcript. Every call is recorded.
    """

    def __init__(self, responses: Any = None):
        self.responses = responses if callable(responses) else list(responses or [])
        self.calls: List[Dict[str, Any]] = []

    def complete(self, messages, model=None, json=False, params=None, tools=None):
        self.calls.append(
            {"messages": list(messages), "model": model, "json": json, "params": params, "tools": tools}
        )
        if callable(self.responses):
            return self.responses(messages)
        if self.responses:
            return self.responses.pop(0)
        return "ok"

    @property
    def prompts(self) -> List[str]:
        return [call["messages"][-1]["content"] for call in self.calls]


class FakeAgentRunner:
    def __init__(self, result: str = "agent done"):
        self.result = result
        self.calls: List[Dict[str, Any]] = []

    def run(self, prompt: str, continue_session: bool = False) -> str:
        self.calls.append({"prompt": prompt, "continue_session": continue_session})
        return self.result


class FakePrompter:
    def __init__(self, answers: Optional[List[Any]] = None):
        self.answers = list(answers or [])
        self.questions: List[str] = []

    def _next(self, text: str, default: Any = None) -> Any:
        self.questions.append(text)
        return self.answers.pop(0) if self.answers else default

    def ask(self, text, default=None):
        return self._next(text, default)

    def confirm(self, text, default=None):
        return self._next(text, default)

    def choose(self, text, options, default=None):
        return self._next(text, default)

    def password(self, text):
        return self._next(text, "")


@pytest.fixture(autouse=True)
def isolated_state(tmp_path, monkeypatch):
    """Keep configuration and persisted sessions inside the test's tmp dir."""
    monkeypatch.setenv("STEPWRIGHT_CONFIG", str(tmp_path / "missing-config.yaml"))
    monkeypatch.setenv("STEPWRIGHT_SESSIONS_DB", str(tmp_path / "sessions.db"))
    monkeypatch.setenv("STEPWRIGHT_STATE_DIR", str(tmp_path / "sessions"))
    monkeypatch.delenv("STEPWRIGHT_STATE_STORAGE", raising=False)
    reset_state_repository()
    yield
    reset_state_repository()


@pytest.fixture
def workflow_dir(tmp_path) -> Path:
    path = tmp_path / "flow"
    path.mkdir()
    return path


@pytest.fixture
def make_workflow(workflow_dir) -> Callable[..., Workflow]:
    """Write a workflow document and build a :class:`Workflow` for it."""

    def build(document: Dict[str, Any], **kwargs: Any) -> Workflow:
        path = workflow_dir / "workflow.yml"
        path.write_text(yaml.safe_dump(document, sort_keys=False))
        kwargs.setdefault("completion", FakeCompletion())
        kwargs.setdefault("agent_runner", FakeAgentRunner())
        kwargs.setdefault("prompter", FakePrompter())
        kwargs.setdefault("notifier", EventNotifier())
        return Workflow.from_file(path, **kwargs)

    return build


@pytest.fixture
def make_executor() -> Callable[..., WorkflowExecutor]:
    def build(workflow: Workflow, repository=None) -> WorkflowExecutor:
        return WorkflowExecutor(workflow, repository, sleep=lambda _: None)

    return build


def write_step(directory: Path, name: str, prompt: str, output: Optional[str] = None) -> Path:
    """Create a prompt-directory step."""
    step_dir = directory / name
    step_dir.mkdir(parents=True, exist_ok=True)
    (step_dir / "prompt.md").write_text(prompt)
    if output is not None:
        (step_dir / "output.txt").write_text(output)
    return step_dir


def write_python_step(directory: Path, name: str, body: str) -> Path:
    path = directory / f"{name}.py"
    path.write_text(body)
    return path
