from __future__ import annotations

import json
import logging
import os
import subprocess
from pathlib import Path
from typing import Any, Dict

from ..errors import StepExecutionError
from .base import BaseStep

logger = logging.getLogger(__name__)


class ShellScriptStep(BaseStep):
    """Runs an executable ``<name>.sh`` file found next to the workflow."""

    def __init__(self, workflow: Any, script_path: str | Path, **kwargs: Any):
        super().__init__(workflow, **kwargs)
        self.script_path = Path(script_path)
        self.exit_on_error = True
        self.env: Dict[str, Any] = {}

    def call(self) -> Any:
        self.validate_script()
        logger.debug(f"Executing shell script: {self.script_path}")
        completed = subprocess.run(
            [str(self.script_path)],
            capture_output=True,
            text=True,
            env=self.environment(),
            cwd=os.getcwd(),
        )
        if completed.returncode == 0:
            result = self.parse_output(completed.stdout)
        else:
            result = self.handle_script_error(completed.stderr, completed.returncode)

        self.process_output(result, print_response=self.print_response)
        return result

    def validate_script(self) -> None:
        if not self.script_path.is_file():
            raise StepExecutionError(f"Shell script not found: {self.script_path}", step_name=self.name)
        if not os.access(self.script_path, os.X_OK):
            raise StepExecutionError(
                f"Shell script is not executable: {self.script_path}. Run: chmod +x {self.script_path}",
                step_name=self.name,
            )

    def environment(self) -> Dict[str, str]:
        env = dict(os.environ)
        if self.resource is not None:
            env["STEPWRIGHT_WORKFLOW_RESOURCE"] = str(self.resource)
        env["STEPWRIGHT_STEP_NAME"] = self.name
        output = self.memory.output
        if output:
            env["STEPWRIGHT_WORKFLOW_OUTPUT"] = json.dumps(output, default=str)
        for key, value in (self.env or {}).items():
            env[str(key)] = str(value)
        return env

    def parse_output(self, stdout: str) -> Any:
        text = stdout.strip()
        if not text:
            return ""
        if not self.json:
            return text
        try:
            return json.loads(text)
        except ValueError as e:
            raise StepExecutionError(
                f"Failed to parse shell script output as JSON: {e}\nOutput was: {text}",
                step_name=self.name,
                original_error=e,
            ) from e

    def handle_script_error(self, stderr: str, exit_code: int) -> str:
        message = f"Shell script failed with exit code {exit_code}"
        if stderr.strip():
            message += f"\nError output:\n{stderr}"
        if self.exit_on_error:
            raise StepExecutionError(message, step_name=self.name)
        logger.error(message)
        return stderr.strip()
