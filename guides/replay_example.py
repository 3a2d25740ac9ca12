"""Resume a workflow from a middle step with the saved state of an earlier run."""

import tempfile
from pathlib import Path

import yaml

from stepwright import WorkflowRunner
from stepwright.persistence import SQLiteStateRepository


def write_workflow(directory: Path) -> Path:
    path = directory / "workflow.yml"
    path.write_text(
        yaml.safe_dump(
            {
                "name": "release notes",
                "steps": [
                    "$(git log --oneline -5)",
                    {"version": "$(date +%Y.%m.%d)"},
                    "$(echo releasing {{version}})",
                ],
            },
            sort_keys=False,
        )
    )
    return path


def main():
    with tempfile.TemporaryDirectory() as tmp:
        path = write_workflow(Path(tmp))
        repository = SQLiteStateRepository(Path(tmp) / "sessions.db")

        print("▶️  First run")
        first = WorkflowRunner(path, repository=repository)
        first.run()
        print(f"Session timestamp: {first.workflow.session_timestamp}")

        print("\n🔁 Replaying from 'version'")
        second = WorkflowRunner(path, replay="version", repository=repository)
        second.run()
        for session in repository.list_sessions():
            print(f"  {session.id}\t{session.status}")


if __name__ == "__main__":
    main()
