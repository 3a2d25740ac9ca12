from types import SimpleNamespace

from stepwright.contracts import WorkflowMemory
from stepwright.persistence import SQLiteStateRepository
from stepwright.state import StateManager


def _workflow(name="Review"):
    return SimpleNamespace(
        name=name,
        path="/work/review/workflow.yml",
        session_name=None,
        session_timestamp="20240101_120000_000",
        memory=WorkflowMemory(),
    )


class BrokenRepository:
    def save_state(self, workflow, snapshot):
        raise OSError("disk full")


def test_snapshot_captures_memory_in_step_order(tmp_path):
    workflow = _workflow()
    workflow.memory.set_output("fetch", "rows")
    workflow.memory.set_output("summarize", "short")
    workflow.memory.append_message("user", "Summarize the rows")
    workflow.memory.append_final_output("short")
    manager = StateManager(workflow, SQLiteStateRepository(tmp_path / "sessions.db"))

    snapshot = manager.build_snapshot("summarize")

    assert snapshot.sequence_order == 1
    assert snapshot.execution_order == ["fetch", "summarize"]
    assert snapshot.transcript == [{"role": "user", "content": "Summarize the rows"}]
    assert snapshot.final_output == ["short"]
    assert manager.step_order("not_yet_run") == 2


def test_save_state_persists_snapshot(tmp_path):
    workflow = _workflow()
    workflow.memory.set_output("fetch", "rows")
    repository = SQLiteStateRepository(tmp_path / "sessions.db")

    result = StateManager(workflow, repository).save_state("fetch")

    assert result.success
    details = repository.get_session_details(result.session_id)
    assert [state.step_name for state in details.states] == ["fetch"]


def test_save_state_without_repository_is_disabled():
    result = StateManager(_workflow(), None).save_state("fetch")
    assert not result.success
    assert result.error == "persistence disabled"


def test_save_state_failure_is_reported_not_raised(caplog):
    workflow = _workflow()
    workflow.memory.set_output("fetch", "rows")

    with caplog.at_level("WARNING"):
        result = StateManager(workflow, BrokenRepository()).save_state("fetch")

    assert not result.success
    assert "disk full" in result.error
    assert "Failed to save workflow state for step fetch" in caplog.text
