"""Exception taxonomy for stepwright workflows."""

from __future__ import annotations

from typing import Optional


class WorkflowError(Exception):
    """Base class for errors raised while executing a workflow."""

    def __init__(
        self,
        message: str,
        step_name: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        self.step_name = step_name
        self.original_error = original_error
        super().__init__(message)


class ConfigurationError(WorkflowError):
    """A step or workflow document is malformed. Never retried."""


class StepNotFoundError(WorkflowError):
    """No step file, step directory or registered class matched a step name. Never retried."""

    def __init__(
        self,
        message: str,
        step_name: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        search_paths: Optional[list[str]] = None,
    ):
        self.search_paths = list(search_paths or [])
        super().__init__(message, step_name=step_name, original_error=original_error)


class StepExecutionError(WorkflowError):
    """A step object raised while running, or could not be constructed."""


class CommandExecutionError(WorkflowError):
    """A ``$(...)`` command exited non-zero or could not be started."""

    def __init__(
        self,
        message: str,
        command: str,
        exit_status: Optional[int] = None,
        output: str = "",
        step_name: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        self.command = command
        self.exit_status = exit_status
        self.output = output
        super().__init__(message, step_name=step_name, original_error=original_error)


class InterpolationError(WorkflowError):
    """An embedded expression could not be evaluated."""


class StateError(WorkflowError):
    """Persisted workflow state could not be read or written."""


class WorkflowPaused(WorkflowError):
    """Execution stopped at the configured pause step."""


class RetryableError(Exception):
    """A transient failure that a retry policy should always consider."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__(message)


__all__ = [
    "WorkflowError",
    "ConfigurationError",
    "StepNotFoundError",
    "StepExecutionError",
    "CommandExecutionError",
    "InterpolationError",
    "StateError",
    "WorkflowPaused",
    "RetryableError",
]
