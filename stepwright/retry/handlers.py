"""Observers notified on every retry attempt."""

from __future__ import annotations

import logging
from typing import Optional

from ..events import EventNotifier, default_notifier

logger = logging.getLogger(__name__)


class RetryHandler:
    """No-op base; subclasses override the hooks they care about."""

    def before_attempt(self, attempt: int) -> None:
        pass

    def on_retry(self, error: BaseException, attempt: int) -> None:
        pass

    def on_success(self, attempt: int) -> None:
        pass

    def on_failure(self, error: BaseException, attempt: int) -> None:
        pass


class LoggingHandler(RetryHandler):
    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def before_attempt(self, attempt: int) -> None:
        self.log.debug(f"Starting attempt {attempt}")

    def on_retry(self, error: BaseException, attempt: int) -> None:
        self.log.warning(
            f"Retrying after attempt {attempt} due to {type(error).__name__}: {error}"
        )

    def on_success(self, attempt: int) -> None:
        if attempt > 1:
            self.log.info(f"Succeeded after {attempt} attempts")

    def on_failure(self, error: BaseException, attempt: int) -> None:
        self.log.error(
            f"Failed after {attempt} attempts with {type(error).__name__}: {error}"
        )


class InstrumentationHandler(RetryHandler):
    """Publishes ``<namespace>.attempt|retry|success|failure`` events."""

    def __init__(
        self, namespace: str = "retry", notifier: Optional[EventNotifier] = None
    ):
        self.namespace = namespace
        self.notifier = notifier or default_notifier

    def before_attempt(self, attempt: int) -> None:
        self.notifier.instrument(f"{self.namespace}.attempt", attempt=attempt)

    def on_retry(self, error: BaseException, attempt: int) -> None:
        self.notifier.instrument(
            f"{self.namespace}.retry",
            attempt=attempt,
            error_class=type(error).__name__,
            error_message=str(error),
        )

    def on_success(self, attempt: int) -> None:
        self.notifier.instrument(f"{self.namespace}.success", attempt=attempt)

    def on_failure(self, error: BaseException, attempt: int) -> None:
        self.notifier.instrument(
            f"{self.namespace}.failure",
            attempt=attempt,
            error_class=type(error).__name__,
            error_message=str(error),
        )


class BackoffLoggingHandler(RetryHandler):
    """Logs the exponential backoff the next attempt will wait for."""

    def __init__(
        self,
        base_delay: float = 1,
        max_delay: float = 60,
        log: Optional[logging.Logger] = None,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.log = log or logger

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    def on_retry(self, error: BaseException, attempt: int) -> None:
        self.log.info(
            f"Backing off for {self.delay_for(attempt)}s before retry attempt {attempt + 1}"
        )


__all__ = [
    "BackoffLoggingHandler",
    "InstrumentationHandler",
    "LoggingHandler",
    "RetryHandler",
]
