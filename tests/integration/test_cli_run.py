import yaml
from typer.testing import CliRunner

from conftest import write_python_step
from stepwright.cli import app
from stepwright.persistence import SQLiteStateRepository

REPORT = """
from stepwright.steps import BaseStep


class Report(BaseStep):
    def call(self):
        listing = self.memory.get_output("$(echo hello)").strip()
        result = f"Report: {listing}"
        self.process_output(result, print_response=self.print_response)
        return result
"""


def _workflow(workflow_dir, steps):
    write_python_step(workflow_dir, "report", REPORT)
    path = workflow_dir / "workflow.yml"
    path.write_text(yaml.safe_dump({"name": "report", "steps": steps}))
    return path


def test_run_prints_final_output_and_completes_session(tmp_path, workflow_dir):
    path = _workflow(workflow_dir, ["$(echo hello)", "report"])

    result = CliRunner().invoke(app, ["run", str(path)])

    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert "Report: hello" in result.stdout
    repo = SQLiteStateRepository(tmp_path / "sessions.db")
    sessions = repo.list_sessions()
    assert [s.status for s in sessions] == ["completed"]
    assert repo.get_session_details(sessions[0].id).session.final_output == "Report: hello"


def test_run_pauses_before_step(tmp_path, workflow_dir):
    path = _workflow(workflow_dir, ["$(echo hello)", "report"])

    result = CliRunner().invoke(app, ["run", str(path), "--pause", "report"])

    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert "Workflow paused" in result.stdout
    repo = SQLiteStateRepository(tmp_path / "sessions.db")
    session = repo.list_sessions()[0]
    assert session.status == "waiting"

    event = CliRunner().invoke(app, ["session", "event", "approved", "--workflow-path", str(path)])
    assert event.exit_code == 0, f"Command failed. Output: {event.stdout}"
    assert repo.get_session_details(session.id).session.status == "running"


def test_run_failure_exits_with_error(workflow_dir):
    path = _workflow(workflow_dir, ["$(exit 7)", "report"])
    result = CliRunner().invoke(app, ["run", str(path)])
    assert result.exit_code == 1
    assert "Workflow failed" in result.stdout


def test_run_missing_workflow(tmp_path):
    result = CliRunner().invoke(app, ["run", str(tmp_path / "nope.yml")])
    assert result.exit_code == 1
    assert "Workflow not found" in result.stdout
