"""Steps delegated to an external coding agent."""

from __future__ import annotations

import json
import logging
import re
import shlex
import subprocess
from typing import Any, Optional, Protocol

from ..config import DEFAULT_AGENT_COMMAND
from ..errors import StepExecutionError
from .base import BaseStep

logger = logging.getLogger(__name__)

_JSON_BLOCK = re.compile(r"```(?:json)?\s*\n(.*?)\n```", re.DOTALL)


class AgentRunner(Protocol):
    def run(self, prompt: str, continue_session: bool = False) -> str:
        ...


class AgentError(Exception):
    """The coding agent reported failure."""


class CommandAgentRunner:
    """Pipes the prompt to a CLI agent on stdin.

    When the command asks for ``json``/``stream-json`` output, the ``result``
    records of the stream are collected as the answer.
    """

    def __init__(self, command: str = DEFAULT_AGENT_COMMAND, timeout: Optional[float] = None):
        self.command = command
        self.timeout = timeout

    def build_command(self, continue_session: bool = False) -> list[str]:
        args = shlex.split(self.command)
        if continue_session:
            args.insert(1, "--continue")
        return args

    @property
    def expects_json(self) -> bool:
        return "--output-format stream-json" in self.command or "--output-format json" in self.command

    def run(self, prompt: str, continue_session: bool = False) -> str:
        args = self.build_command(continue_session)
        logger.info(f"Running coding agent: {' '.join(args)}")
        completed = subprocess.run(
            args,
            input=prompt,
            capture_output=True,
            text=True,
            timeout=self.timeout,
        )
        if completed.returncode != 0:
            raise AgentError(completed.stderr.strip() or f"exit status {completed.returncode}")
        if not self.expects_json:
            return completed.stdout
        return self._collect_results(completed.stdout)

    def _collect_results(self, stdout: str) -> str:
        result = ""
        for line in stdout.splitlines():
            if not line.strip():
                continue
            try:
                message = json.loads(line)
            except ValueError as e:
                logger.warning(f"Error parsing agent JSON line: {e}")
                continue
            if message.get("type") != "result":
                logger.debug(f"agent message: {message.get('type')}")
                continue
            if message.get("is_error"):
                raise AgentError(str(message.get("result")))
            if message.get("subtype") != "success":
                raise AgentError(f"Agent did not complete successfully: {line}")
            result += str(message.get("result") or "")
        return result


def extract_json_from_markdown(text: str) -> str:
    match = _JSON_BLOCK.search(text)
    return match.group(1).strip() if match else text.strip()


class AgentStep(BaseStep):
    """Sends a prompt to the workflow's coding agent instead of the model."""

    def __init__(self, workflow: Any, inline: bool = False, **kwargs: Any):
        super().__init__(workflow, **kwargs)
        self.inline = inline
        self.continue_session = False

    def call(self) -> Any:
        prompt = self.name if self.inline else self.read_sidecar_prompt()
        runner = self.workflow.agent_runner
        try:
            result: Any = runner.run(prompt, continue_session=self.continue_session)
        except (AgentError, OSError, subprocess.SubprocessError) as e:
            raise StepExecutionError(
                f"Error running coding agent: {e}", step_name=self.name, original_error=e
            ) from e

        if self.json and isinstance(result, str):
            try:
                result = json.loads(extract_json_from_markdown(result))
            except ValueError as e:
                raise StepExecutionError(
                    f"Failed to parse coding agent result as JSON: {e}",
                    step_name=self.name,
                    original_error=e,
                ) from e

        self.process_output(result, print_response=self.print_response)
        return self.apply_coercion(result)
