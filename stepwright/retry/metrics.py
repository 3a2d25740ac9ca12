"""Counters collected by the retry loop."""

from __future__ import annotations

import threading
from typing import List


class RetryMetrics:
    def __init__(self) -> None:
        self.attempts = 0
        self.retries = 0
        self.successes = 0
        self.failures = 0
        self.durations: List[float] = []
        self._lock = threading.Lock()

    def record_attempt(self, attempt: int) -> None:
        with self._lock:
            self.attempts += 1

    def record_retry(self, attempt: int) -> None:
        with self._lock:
            self.retries += 1

    def record_success(self, attempt: int, duration: float) -> None:
        with self._lock:
            self.successes += 1
            self.durations.append(duration)

    def record_failure(self, attempt: int, duration: float) -> None:
        with self._lock:
            self.failures += 1
            self.durations.append(duration)

    @property
    def average_duration(self) -> float:
        if not self.durations:
            return 0.0
        return sum(self.durations) / len(self.durations)

    @property
    def success_rate(self) -> float:
        total = self.successes + self.failures
        if total == 0:
            return 0.0
        return self.successes / total * 100

    def to_dict(self) -> dict:
        return {
            "attempts": self.attempts,
            "retries": self.retries,
            "successes": self.successes,
            "failures": self.failures,
            "average_duration": self.average_duration,
            "success_rate": self.success_rate,
        }


__all__ = ["RetryMetrics"]
