"""Run a workflow, then resume it from a middle step."""

import yaml

from conftest import FakeCompletion, write_step
from stepwright.persistence import SQLiteStateRepository
from stepwright.runner import WorkflowRunner


def _answer(messages):
    return f"answer to {messages[-1]['content']}"


def _write_workflow(directory):
    write_step(directory, "a", "Prompt a")
    write_step(directory, "b", "Prompt b")
    write_step(directory, "c", "Prompt c after {{ b }}")
    write_step(directory, "d", "Prompt d")
    path = directory / "workflow.yml"
    path.write_text(yaml.safe_dump({"name": "four steps", "steps": ["a", "b", "c", "d"]}))
    return path


def test_replay_from_step_restores_prior_memory(tmp_path, workflow_dir):
    path = _write_workflow(workflow_dir)
    repository = SQLiteStateRepository(tmp_path / "replay.db")

    first = WorkflowRunner(path, repository=repository, completion=FakeCompletion(_answer))
    assert first.run() == "answer to Prompt d"
    first_session = repository.latest_session_id(first.workflow)

    completion = FakeCompletion(_answer)
    second = WorkflowRunner(path, replay="c", repository=repository, completion=completion)
    final_output = second.run()

    assert completion.prompts == ["Prompt c after answer to Prompt b", "Prompt d"]
    assert final_output == "answer to Prompt d"
    assert list(second.workflow.output) == ["a", "b", "c", "d"]
    assert second.workflow.output["a"] == "answer to Prompt a"

    second_session = repository.latest_session_id(second.workflow)
    assert second_session != first_session
    details = repository.get_session_details(second_session)
    assert [state.step_name for state in details.states] == ["a", "b", "c", "d"]
    assert details.session.status == "completed"


def test_replay_from_named_session(tmp_path, workflow_dir):
    path = _write_workflow(workflow_dir)
    repository = SQLiteStateRepository(tmp_path / "replay.db")

    first = WorkflowRunner(path, repository=repository, completion=FakeCompletion(_answer))
    first.run()
    timestamp = first.workflow.session_timestamp

    completion = FakeCompletion(_answer)
    WorkflowRunner(
        path, replay=f"{timestamp}:d", repository=repository, completion=completion
    ).run()

    assert completion.prompts == ["Prompt d"]


def test_replay_of_unknown_step_runs_everything(tmp_path, workflow_dir):
    path = _write_workflow(workflow_dir)
    completion = FakeCompletion(_answer)
    runner = WorkflowRunner(
        path, replay="z", repository=SQLiteStateRepository(tmp_path / "replay.db"), completion=completion
    )
    runner.run()
    assert len(completion.prompts) == 4
