"""Run a small workflow from Python instead of the CLI."""

import tempfile
from pathlib import Path

import yaml

from stepwright import WorkflowRunner, register_step_class
from stepwright.steps import BaseStep


class CountLines(BaseStep):
    """Counts the lines listed by the previous command."""

    def call(self):
        listing = self.memory.get_output("$(ls -1)") or ""
        result = f"{len(listing.splitlines())} entries in the working directory"
        self.process_output(result, print_response=self.print_response)
        return result


def main():
    print("🚀 Basic stepwright workflow")
    register_step_class("count_lines", CountLines)

    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "workflow.yml"
        path.write_text(
            yaml.safe_dump(
                {
                    "name": "listing",
                    "steps": [
                        "$(ls -1)",
                        {"if": "$(test -d .git)", "then": ["$(git status --short)"]},
                        "count_lines",
                    ],
                },
                sort_keys=False,
            )
        )
        runner = WorkflowRunner(path)
        final_output = runner.run()

    print(f"✅ Workflow finished: {final_output}")
    for key in runner.workflow.output:
        print(f"  - {key}")


if __name__ == "__main__":
    main()
