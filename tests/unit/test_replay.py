from types import SimpleNamespace

import pytest

from stepwright.contracts import WorkflowMemory
from stepwright.persistence import FileStateRepository, SQLiteStateRepository, Snapshot
from stepwright.replay import ReplayHandler, find_step_index, parse_replay_request

STEPS = ["fetch", ["lint", "test"], {"summary": "Summarize {{fetch}}"}, "report"]


def _workflow():
    return SimpleNamespace(
        name="Review",
        path="/work/review/workflow.yml",
        session_name=None,
        session_timestamp="20240101_120000_000",
        memory=WorkflowMemory(),
    )


def _record_run(repository, workflow, names):
    output = {}
    for index, name in enumerate(names):
        output[name] = f"{name}-result"
        repository.save_state(
            workflow,
            Snapshot(
                step_name=name,
                sequence_order=index,
                transcript=[{"role": "user", "content": name}],
                output=dict(output),
                execution_order=list(output),
            ),
        )


def test_parse_replay_request():
    assert parse_replay_request("summarize") == (None, "summarize")
    assert parse_replay_request("20240101_120000_000:summarize") == ("20240101_120000_000", "summarize")
    with pytest.raises(ValueError, match="Invalid timestamp format"):
        parse_replay_request("yesterday:summarize")


def test_find_step_index_matches_parallel_members_and_labels():
    assert find_step_index(STEPS, "fetch") == 0
    assert find_step_index(STEPS, "test") == 1
    assert find_step_index(STEPS, "summary") == 2
    assert find_step_index(STEPS, "missing") is None


def test_unknown_step_runs_everything():
    handler = ReplayHandler(_workflow(), None)
    assert handler.process_replay(STEPS, "missing") == STEPS
    assert handler.processed


def test_replay_without_repository_skips_prior_steps():
    handler = ReplayHandler(_workflow(), None)
    assert handler.process_replay(STEPS, "summary") == STEPS[2:]
    assert handler.process_replay(STEPS, "summary") == STEPS


def test_replay_restores_memory_and_forks_session(tmp_path):
    repository = SQLiteStateRepository(tmp_path / "sessions.db")
    previous = _workflow()
    _record_run(repository, previous, ["fetch", "lint", "summary", "report"])
    source = repository.latest_session_id(previous)

    workflow = _workflow()
    workflow.session_timestamp = None
    remaining = ReplayHandler(workflow, repository).process_replay(STEPS, "summary")

    assert remaining == STEPS[2:]
    assert workflow.memory.output == {"fetch": "fetch-result", "lint": "lint-result"}
    assert workflow.session_timestamp is not None
    forked = repository.latest_session_id(workflow)
    assert forked != source
    assert [s.step_name for s in repository.get_session_details(forked).states] == ["fetch", "lint"]


def test_replay_from_named_session(tmp_path):
    repository = SQLiteStateRepository(tmp_path / "sessions.db")
    _record_run(repository, _workflow(), ["fetch", "lint", "summary"])

    workflow = _workflow()
    workflow.session_timestamp = None
    ReplayHandler(workflow, repository).process_replay(STEPS, "20240101_120000_000:summary")

    assert workflow.session_timestamp == "20240101_120000_000"
    assert workflow.memory.get_output("lint") == "lint-result"


def test_corrupt_saved_state_is_ignored(tmp_path, caplog):
    repository = SQLiteStateRepository(tmp_path / "sessions.db")
    _record_run(repository, _workflow(), ["fetch", "lint", "summary"])
    repository._execute("UPDATE session_states SET state_data = 'not json'")

    workflow = _workflow()
    workflow.session_timestamp = None
    with caplog.at_level("WARNING"):
        remaining = ReplayHandler(workflow, repository).process_replay(STEPS, "summary")

    assert remaining == STEPS[2:]
    assert workflow.memory.output == {}
    assert "Ignoring unreadable saved state" in caplog.text


class DiskFullRepository(FileStateRepository):
    def fork_session(self, workflow, source_session_id, step_name):
        raise OSError("disk full")


class BrokenLookupRepository(FileStateRepository):
    def latest_session_id(self, workflow):
        raise OSError("permission denied")


def test_fork_failure_does_not_abort_replay(tmp_path, caplog):
    repository = DiskFullRepository(tmp_path)
    _record_run(repository, _workflow(), ["a", "b"])

    workflow = _workflow()
    workflow.session_timestamp = None
    with caplog.at_level("WARNING"):
        remaining = ReplayHandler(workflow, repository).process_replay(["a", "b"], "b")

    assert remaining == ["b"]
    assert workflow.memory.output == {"a": "a-result"}
    assert "disk full" in caplog.text


def test_session_lookup_failure_runs_without_context(tmp_path, caplog):
    repository = BrokenLookupRepository(tmp_path)

    workflow = _workflow()
    workflow.session_timestamp = None
    with caplog.at_level("WARNING"):
        remaining = ReplayHandler(workflow, repository).process_replay(["a", "b"], "b")

    assert remaining == ["b"]
    assert workflow.memory.output == {}
    assert "permission denied" in caplog.text
