"""Backoff strategies. ``attempt`` is 1-based."""

from __future__ import annotations


class RetryStrategy:
    name = "base"

    def calculate(self, attempt: int, base_delay: float, max_delay: float) -> float:  # pragma: no cover - interface
        raise NotImplementedError


class ExponentialBackoffStrategy(RetryStrategy):
    name = "exponential"

    def __init__(self, multiplier: float = 2):
        self.multiplier = multiplier

    def calculate(self, attempt: int, base_delay: float, max_delay: float) -> float:
        delay = base_delay * (self.multiplier ** (attempt - 1))
        return min(delay, max_delay)


class LinearBackoffStrategy(RetryStrategy):
    name = "linear"

    def __init__(self, increment: float | None = None):
        self.increment = increment

    def calculate(self, attempt: int, base_delay: float, max_delay: float) -> float:
        increment = base_delay if self.increment is None else self.increment
        delay = base_delay + increment * (attempt - 1)
        return min(delay, max_delay)


class ConstantDelayStrategy(RetryStrategy):
    name = "constant"

    def calculate(self, attempt: int, base_delay: float, max_delay: float) -> float:
        return min(base_delay, max_delay)


class NoDelayStrategy(RetryStrategy):
    name = "none"

    def calculate(self, attempt: int, base_delay: float, max_delay: float) -> float:
        return 0


STRATEGIES = {
    "exponential": ExponentialBackoffStrategy,
    "linear": LinearBackoffStrategy,
    "constant": ConstantDelayStrategy,
    "fixed": ConstantDelayStrategy,
    "none": NoDelayStrategy,
}


__all__ = [
    "STRATEGIES",
    "ConstantDelayStrategy",
    "ExponentialBackoffStrategy",
    "LinearBackoffStrategy",
    "NoDelayStrategy",
    "RetryStrategy",
]
