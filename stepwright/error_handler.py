"""Uniform failure handling around step execution."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from .errors import (
    CommandExecutionError,
    StepExecutionError,
    StepNotFoundError,
    WorkflowError,
)
from .events import (
    STEP_COMPLETE,
    STEP_ERROR,
    STEP_RETRY,
    STEP_START,
    EventNotifier,
    default_notifier,
)
from .retry import ConstantDelayStrategy, LoggingHandler, Retryable, RetryPolicy

logger = logging.getLogger(__name__)


def policy_for_retries(retries: int) -> RetryPolicy:
    """Plain retry count: immediate retries on any error."""
    return RetryPolicy(
        strategy=ConstantDelayStrategy(),
        max_attempts=max(int(retries or 0), 0),
        base_delay=0,
        handlers=(LoggingHandler(),),
    )


class ErrorHandler:
    """Runs a step block with retries, lifecycle events and error wrapping."""

    def __init__(
        self,
        notifier: Optional[EventNotifier] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.notifier = notifier or default_notifier
        self.sleep = sleep

    def with_error_handling(
        self,
        step_name: str,
        block: Callable[[], Any],
        retries: int = 0,
        retry_policy: Optional[RetryPolicy] = None,
        resource_type: Optional[str] = None,
    ) -> Any:
        policy = retry_policy or policy_for_retries(retries)
        started = time.monotonic()
        self.notifier.instrument(
            STEP_START, step_name=step_name, resource_type=resource_type
        )

        def on_retry(error: BaseException, attempt: int, delay: float) -> None:
            logger.warning(
                f"Step '{step_name}' failed on attempt {attempt}: {error}. "
                f"Retrying in {delay:.2f}s"
            )
            self.notifier.instrument(
                STEP_RETRY,
                step_name=step_name,
                resource_type=resource_type,
                attempt=attempt,
                error=type(error).__name__,
                message=str(error),
                delay=delay,
            )

        retryable = Retryable(policy, sleep=self.sleep, on_retry=on_retry)
        try:
            result = retryable.execute(block)
        except Exception as error:
            execution_time = time.monotonic() - started
            self.notifier.instrument(
                STEP_ERROR,
                step_name=step_name,
                resource_type=resource_type,
                error=type(error).__name__,
                message=str(error),
                execution_time=execution_time,
                attempts=retryable.metrics.attempts,
            retry_metrics=retryable.metrics.to_dict(),
            )
            self._log_failure(step_name, error)
            if isinstance(error, WorkflowError):
                if error.step_name is None:
                    error.step_name = step_name
                raise
            raise StepExecutionError(
                f"Failed to execute step '{step_name}': {error}",
                step_name=step_name,
                original_error=error,
            ) from error

        self.notifier.instrument(
            STEP_COMPLETE,
            step_name=step_name,
            resource_type=resource_type,
            success=True,
            execution_time=time.monotonic() - started,
            result_size=len(str(result)) if result is not None else 0,
            attempts=retryable.metrics.attempts,
            retry_metrics=retryable.metrics.to_dict(),
        )
        return result

    def _log_failure(self, step_name: str, error: BaseException) -> None:
        if isinstance(error, StepNotFoundError):
            searched = ", ".join(error.search_paths) or "none"
            logger.error(
                f"Step not found: '{step_name}'. Check that the step exists in the "
                f"workflow's steps directory. Searched: {searched}"
            )
        elif isinstance(error, CommandExecutionError):
            logger.error(
                f"Command failed in step '{step_name}': {error.command} "
                f"(exit status {error.exit_status})"
            )
        elif isinstance(error, WorkflowError):
            logger.error(f"Step '{step_name}' failed: {error}")
        elif isinstance(error, AttributeError) and "call" in str(error):
            logger.error(
                f"Step error: '{step_name}'. The step class exists but may be "
                f"missing its 'call' method. Error: {error}"
            )
        else:
            logger.error(
                f"Step failed: '{step_name}'. Error: {error}. "
                f"This may be an issue with the step's implementation."
            )


__all__ = ["ErrorHandler", "policy_for_retries"]
