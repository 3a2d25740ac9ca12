"""Retry policies, matchers, strategies and the attempt loop."""

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
from .metrics import RetryMetrics
from .policy import RetryPolicy, build_policy, default_policy
from .retryable import Retryable
from .strategies import (
    ConstantDelayStrategy,
    ExponentialBackoffStrategy,
    LinearBackoffStrategy,
    NoDelayStrategy,
    RetryStrategy,
)

__all__ = [
    "AlwaysMatcher",
    "BackoffLoggingHandler",
    "CompositeMatcher",
    "ConstantDelayStrategy",
    "ErrorMatcher",
    "ErrorMessageMatcher",
    "ErrorTypeMatcher",
    "ExponentialBackoffStrategy",
    "HttpStatusMatcher",
    "InstrumentationHandler",
    "LinearBackoffStrategy",
    "LoggingHandler",
    "NoDelayStrategy",
    "RateLimitMatcher",
    "RetryHandler",
    "RetryMetrics",
    "RetryPolicy",
    "RetryStrategy",
    "Retryable",
    "TimeoutMatcher",
    "build_policy",
    "default_policy",
    "transient_matcher",
]
