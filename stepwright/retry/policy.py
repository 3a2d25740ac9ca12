"""Immutable retry policies and the factory that builds them from config."""

from __future__ import annotations

import random
import re
from typing import Any, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from ..errors import ConfigurationError, StepNotFoundError
from .handlers import (
    BackoffLoggingHandler,
    InstrumentationHandler,
    LoggingHandler,
    RetryHandler,
)
from .matchers import (
    AlwaysMatcher,
    CompositeMatcher,
    ErrorMatcher,
    ErrorMessageMatcher,
    ErrorTypeMatcher,
    HttpStatusMatcher,
    RateLimitMatcher,
    TimeoutMatcher,
    transient_matcher,
)
from .strategies import STRATEGIES, ExponentialBackoffStrategy, RetryStrategy

JITTER_RATIO = 0.1


class RetryPolicy(BaseModel):
    """How a single block of work is retried."""

    strategy: RetryStrategy = Field(default_factory=ExponentialBackoffStrategy)
    max_attempts: int = 3
    matcher: ErrorMatcher = Field(default_factory=AlwaysMatcher)
    handlers: Tuple[RetryHandler, ...] = ()
    base_delay: float = 1
    max_delay: float = 60
    jitter: bool = False
    idempotent: bool = True
    enabled: bool = True

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        """Whether the failure of ``attempt`` (1-based) earns another attempt."""
        if not self.enabled or not self.idempotent:
            return False
        if isinstance(error, (ConfigurationError, StepNotFoundError)):
            return False
        if attempt > self.max_attempts:
            return False
        return self.matcher.matches(error)

    def delay_for(self, attempt: int, error: Optional[BaseException] = None) -> float:
        delay = self.strategy.calculate(attempt, self.base_delay, self.max_delay)
        retry_after = getattr(error, "retry_after", None)
        if retry_after:
            delay = max(delay, float(retry_after))
        if self.jitter and delay:
            delay += (random.random() * 2 - 1) * delay * JITTER_RATIO
        return max(delay, 0)


def default_policy() -> RetryPolicy:
    return RetryPolicy(
        strategy=ExponentialBackoffStrategy(),
        max_attempts=3,
        base_delay=1,
        max_delay=60,
        jitter=True,
        handlers=(LoggingHandler(), InstrumentationHandler()),
    )


def _type_of(config: Union[str, Mapping[str, Any]]) -> Tuple[str, Mapping[str, Any]]:
    if isinstance(config, str):
        return config, {}
    if isinstance(config, Mapping):
        return str(config.get("type", "")), config
    raise ConfigurationError(f"Invalid retry configuration entry: {config!r}")


def build_strategy(config: Union[str, Mapping[str, Any], None]) -> RetryStrategy:
    name, options = _type_of(config or "exponential")
    try:
        strategy_cls = STRATEGIES[name]
    except KeyError:
        raise ConfigurationError(f"Unknown retry strategy: {name}") from None
    if strategy_cls is ExponentialBackoffStrategy and "multiplier" in options:
        return ExponentialBackoffStrategy(multiplier=options["multiplier"])
    if name == "linear" and "increment" in options:
        return strategy_cls(increment=options["increment"])
    return strategy_cls()


def build_matcher(config: Union[str, Mapping[str, Any], None]) -> ErrorMatcher:
    if not config:
        return AlwaysMatcher()
    name, options = _type_of(config)
    try:
        if name == "always":
            return AlwaysMatcher()
        if name == "error_type":
            return ErrorTypeMatcher(options.get("errors", []))
        if name == "error_message":
            pattern = options["pattern"]
            if options.get("regex"):
                pattern = re.compile(pattern)
            return ErrorMessageMatcher(pattern)
        if name == "http_status":
            return HttpStatusMatcher(options.get("statuses"))
        if name == "rate_limit":
            return RateLimitMatcher()
        if name == "timeout":
            return TimeoutMatcher()
        if name == "transient":
            return transient_matcher()
        if name == "composite":
            matchers = [build_matcher(m) for m in options.get("matchers", [])]
            return CompositeMatcher(matchers, operator=options.get("operator", "any"))
    except (KeyError, ValueError, ImportError) as e:
        raise ConfigurationError(f"Invalid retry matcher {name}: {e}") from e
    raise ConfigurationError(f"Unknown matcher type: {name}")


def build_handler(config: Union[str, Mapping[str, Any]]) -> RetryHandler:
    name, options = _type_of(config)
    if name == "logging":
        return LoggingHandler()
    if name == "instrumentation":
        return InstrumentationHandler(namespace=options.get("namespace", "retry"))
    if name in ("backoff_logging", "exponential_backoff"):
        return BackoffLoggingHandler(
            base_delay=options.get("base_delay", 1),
            max_delay=options.get("max_delay", 60),
        )
    raise ConfigurationError(f"Unknown handler type: {name}")


def build_policy(config: Union[None, bool, int, Mapping[str, Any], RetryPolicy]) -> RetryPolicy:
    """Build a policy from workflow configuration.

    ``None`` or ``True`` yields :func:`default_policy`, ``False`` a disabled
    policy, and an integer is shorthand for ``max_attempts``.
    """
    if isinstance(config, RetryPolicy):
        return config
    if config is None or config is True:
        return default_policy()
    if config is False:
        return RetryPolicy(enabled=False)
    if isinstance(config, int):
        return RetryPolicy(max_attempts=config, handlers=(LoggingHandler(),))
    if not isinstance(config, Mapping):
        raise ConfigurationError(f"Invalid retry configuration: {config!r}")

    handlers = tuple(build_handler(h) for h in config.get("handlers") or [])
    try:
        return RetryPolicy(
            strategy=build_strategy(config.get("strategy")),
            max_attempts=config.get("max_attempts", 3),
            matcher=build_matcher(config.get("matcher")),
            handlers=handlers,
            base_delay=config.get("base_delay", 1),
            max_delay=config.get("max_delay", 60),
            jitter=config.get("jitter", False),
            idempotent=config.get("idempotent", True),
            enabled=config.get("enabled", True),
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid retry configuration: {e}") from e


__all__ = [
    "RetryPolicy",
    "build_handler",
    "build_matcher",
    "build_policy",
    "build_strategy",
    "default_policy",
]
