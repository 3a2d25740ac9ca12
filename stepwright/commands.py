"""Execution of ``$(...)`` shell command steps."""

from __future__ import annotations

import logging
import re
import subprocess
from typing import Optional

from .errors import CommandExecutionError

logger = logging.getLogger(__name__)

_COMMAND_PATTERN = re.compile(r"^\$\((.*)\)$", re.DOTALL)


def extract_command(command_string: str) -> str:
    """Return the text inside ``$(...)``."""
    match = _COMMAND_PATTERN.match(command_string.strip())
    if not match:
        raise ValueError(
            f"Invalid command format. Expected $(command), got: {command_string}"
        )
    return match.group(1)


class CommandExecutor:
    """Runs command steps through the shell and captures stdout."""

    def __init__(self, cwd: Optional[str] = None, timeout: Optional[float] = None):
        self.cwd = cwd
        self.timeout = timeout

    def execute(self, command_string: str, exit_on_error: bool = True) -> str:
        """Run ``command_string`` and return its output.

        A non-zero exit raises :class:`CommandExecutionError` unless
        ``exit_on_error`` is false, in which case the status is appended to
        the output as ``[Exit status: N]``.
        """
        command = extract_command(command_string)
        logger.debug(f"Running command: {command}")
        try:
            completed = subprocess.run(
                command,
                shell=True,
                capture_output=True,
                text=True,
                cwd=self.cwd,
                timeout=self.timeout,
            )
        except (OSError, subprocess.SubprocessError) as e:
            if exit_on_error:
                raise CommandExecutionError(
                    f"Failed to execute command '{command}': {e}",
                    command=command,
                    original_error=e,
                ) from e
            logger.warning(
                f"Command '{command}' failed with error: {e}, continuing execution"
            )
            return f"Error executing command: {e}\n[Exit status: error]"

        if completed.returncode == 0:
            return completed.stdout

        if exit_on_error:
            raise CommandExecutionError(
                f"Command exited with non-zero status ({completed.returncode})",
                command=command,
                exit_status=completed.returncode,
                output=completed.stdout + completed.stderr,
            )

        logger.warning(
            f"Command '{command}' exited with non-zero status "
            f"({completed.returncode}), continuing execution"
        )
        return f"{completed.stdout}\n[Exit status: {completed.returncode}]"

    def succeeded(self, command_string: str) -> bool:
        """Run a command for its exit status only."""
        output = self.execute(command_string, exit_on_error=False)
        return "[Exit status:" not in output


__all__ = ["CommandExecutor", "extract_command"]
