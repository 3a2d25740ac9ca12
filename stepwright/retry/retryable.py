"""The attempt loop that applies a :class:`RetryPolicy`."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

from .metrics import RetryMetrics
from .policy import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Retryable:
    """Runs a block until it succeeds or the policy gives up.

    The error of the last attempt is re-raised unchanged.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        metrics: Optional[RetryMetrics] = None,
        sleep: Callable[[float], None] = time.sleep,
        on_retry: Optional[Callable[[BaseException, int, float], None]] = None,
    ):
        self.policy = policy
        self.metrics = metrics or RetryMetrics()
        self.sleep = sleep
        self.on_retry = on_retry

    def execute(self, block: Callable[[], T]) -> T:
        attempt = 0
        started = time.monotonic()
        while True:
            attempt += 1
            self._notify_before_attempt(attempt)
            try:
                result = block()
            except Exception as error:
                if not self.policy.should_retry(error, attempt):
                    self._notify_failure(error, attempt, time.monotonic() - started)
                    raise
                delay = self.policy.delay_for(attempt, error)
                self._notify_retry(error, attempt, delay)
                if delay > 0:
                    self.sleep(delay)
                continue
            self._notify_success(attempt, time.monotonic() - started)
            return result

    def _notify_before_attempt(self, attempt: int) -> None:
        for handler in self.policy.handlers:
            handler.before_attempt(attempt)
        self.metrics.record_attempt(attempt)

    def _notify_retry(self, error: BaseException, attempt: int, delay: float) -> None:
        for handler in self.policy.handlers:
            handler.on_retry(error, attempt)
        self.metrics.record_retry(attempt)
        if self.on_retry is not None:
            self.on_retry(error, attempt, delay)

    def _notify_success(self, attempt: int, duration: float) -> None:
        for handler in self.policy.handlers:
            handler.on_success(attempt)
        self.metrics.record_success(attempt, duration)

    def _notify_failure(self, error: BaseException, attempt: int, duration: float) -> None:
        for handler in self.policy.handlers:
            handler.on_failure(error, attempt)
        self.metrics.record_failure(attempt, duration)


__all__ = ["Retryable"]
