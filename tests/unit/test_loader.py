import pytest

from conftest import write_python_step, write_step
from stepwright.errors import StepExecutionError, StepNotFoundError
from stepwright.loader import StepLoader, camel_case, register_step_class, unregister_step_class
from stepwright.steps import AgentStep, BaseStep, PromptStep, ShellScriptStep

COUNT_FILES = """
from stepwright.steps import BaseStep


class CountFiles(BaseStep):
    def call(self):
        return "3 files"
"""


class Greeting(BaseStep):
    greeting = "hello"

    def call(self):
        return self.greeting


@pytest.fixture
def registered():
    register_step_class("greet", Greeting)
    yield
    unregister_step_class("greet")


def test_camel_case():
    assert camel_case("count_files") == "CountFiles"
    assert camel_case("lint-check") == "LintCheck"


def test_inline_prompt_becomes_prompt_step(make_workflow):
    loader = StepLoader(make_workflow({"steps": []}))
    step = loader.load("Summarize the changes")
    assert isinstance(step, PromptStep)

    agent_step = loader.load("Fix the failing tests", agent=True)
    assert isinstance(agent_step, AgentStep)
    assert agent_step.inline


def test_python_step_class_is_loaded(make_workflow, workflow_dir):
    write_python_step(workflow_dir, "count_files", COUNT_FILES)
    step = StepLoader(make_workflow({"steps": []})).load("count_files")
    assert type(step).__name__ == "CountFiles"
    assert step.call() == "3 files"
    assert step.context_path == workflow_dir


def test_python_step_in_shared_directory(make_workflow, workflow_dir):
    shared = workflow_dir.parent / "shared"
    shared.mkdir()
    write_python_step(shared, "count_files", COUNT_FILES)
    step = StepLoader(make_workflow({"steps": []})).load("count_files")
    assert step.call() == "3 files"


def test_per_step_path_is_searched_first(make_workflow, workflow_dir):
    write_step(workflow_dir, "review", "Default review")
    write_step(workflow_dir / "custom", "review", "Custom review")
    workflow = make_workflow({"steps": ["review"], "review": {"path": "custom"}})
    step = StepLoader(workflow).load("review")
    assert step.read_sidecar_prompt() == "Custom review"


def test_shell_script_step(make_workflow, workflow_dir):
    script = workflow_dir / "lint.sh"
    script.write_text("#!/bin/sh\necho clean\n")
    script.chmod(0o755)
    step = StepLoader(make_workflow({"steps": []})).load("lint")
    assert isinstance(step, ShellScriptStep)
    assert step.call() == "clean"


def test_directory_step(make_workflow, workflow_dir):
    write_step(workflow_dir / "steps", "review", "Review {{ resource }}")
    workflow = make_workflow({"steps": [], "target": "app.py"})
    step = StepLoader(workflow).load("review")
    assert type(step) is BaseStep
    assert step.read_sidecar_prompt() == "Review app.py"

    assert isinstance(StepLoader(workflow).load("review", agent=True), AgentStep)


def test_missing_step_lists_search_paths(make_workflow, workflow_dir):
    with pytest.raises(StepNotFoundError) as exc_info:
        StepLoader(make_workflow({"steps": []})).load("ghost")
    paths = exc_info.value.search_paths
    assert str(workflow_dir / "ghost.py") in paths
    assert str(workflow_dir / "steps" / "ghost.sh") in paths
    assert f"{workflow_dir.parent / 'shared' / 'ghost'}/" in paths


def test_syntax_error_in_step_file(make_workflow, workflow_dir):
    write_python_step(workflow_dir, "broken", "def call(:\n")
    with pytest.raises(StepExecutionError, match="Syntax error"):
        StepLoader(make_workflow({"steps": []})).load("broken")


def test_step_file_without_step_class(make_workflow, workflow_dir):
    write_python_step(workflow_dir, "helpers", "VALUE = 1\n")
    with pytest.raises(StepExecutionError, match="does not define a Helpers step class"):
        StepLoader(make_workflow({"steps": []})).load("helpers")


def test_registered_step_class_wins(make_workflow, registered):
    step = StepLoader(make_workflow({"steps": []})).load("greet")
    assert isinstance(step, Greeting)


def test_register_rejects_non_steps():
    with pytest.raises(TypeError):
        register_step_class("bad", object)


def test_step_configuration_is_applied(make_workflow, registered):
    workflow = make_workflow(
        {
            "steps": ["greet"],
            "model": "openai:gpt-4o",
            "greet": {
                "model": "anthropic:claude-sonnet-4-0",
                "json": True,
                "params": {"temperature": 0},
                "coerce_to": "boolean",
                "greeting": "hi",
                "call": "not a method",
            },
        }
    )
    step = StepLoader(workflow).load("greet")
    assert step.model == "anthropic:claude-sonnet-4-0"
    assert step.json is True
    assert step.params == {"temperature": 0}
    assert step.coerce_to == "boolean"
    assert step.greeting == "hi"
    assert callable(step.call)


def test_model_falls_back_to_workflow_then_engine_default(make_workflow, registered):
    workflow = make_workflow({"steps": [], "model": "openai:gpt-4o"})
    assert StepLoader(workflow).load("greet").model == "openai:gpt-4o"

    plain = make_workflow({"steps": []})
    assert StepLoader(plain).load("greet").model == plain.default_model


def test_last_step_prints_response_unless_configured(make_workflow, registered):
    workflow = make_workflow({"steps": []})
    assert StepLoader(workflow).load("greet", is_last_step=True).print_response
    assert not StepLoader(workflow).load("greet").print_response

    quiet = make_workflow({"steps": [], "greet": {"print_response": False}})
    assert not StepLoader(quiet).load("greet", is_last_step=True).print_response
