"""Error matchers deciding whether a failure is worth retrying."""

from __future__ import annotations

import builtins
import importlib
import re
from typing import Iterable, Optional, Sequence, Union

import httpx

from .. import errors as workflow_errors
from ..errors import RetryableError

RETRYABLE_STATUSES = (408, 429, 500, 502, 503, 504)
RATE_LIMIT_KEYWORDS = ("rate limit", "too many requests", "quota exceeded")


class ErrorMatcher:
    """Base matcher. Subclasses override :meth:`matches`."""

    def matches(self, error: BaseException) -> bool:  # pragma: no cover - interface
        raise NotImplementedError

    def __call__(self, error: BaseException) -> bool:
        return self.matches(error)


class AlwaysMatcher(ErrorMatcher):
    def matches(self, error: BaseException) -> bool:
        return True


def _resolve_error_type(name: str) -> type:
    if "." not in name:
        candidate = getattr(builtins, name, None) or getattr(workflow_errors, name, None)
        if isinstance(candidate, type) and issubclass(candidate, BaseException):
            return candidate
        raise ValueError(f"Unknown error type: {name}")

    module_name, _, attr = name.rpartition(".")
    module = importlib.import_module(module_name)
    candidate = getattr(module, attr, None)
    if not (isinstance(candidate, type) and issubclass(candidate, BaseException)):
        raise ValueError(f"Unknown error type: {name}")
    return candidate


class ErrorTypeMatcher(ErrorMatcher):
    """Matches errors that are instances of any of the given types.

    Types may be given as classes or as (dotted) names.
    """

    def __init__(self, error_types: Iterable[Union[type, str]]):
        self.error_types = tuple(
            _resolve_error_type(t) if isinstance(t, str) else t for t in error_types
        )

    def matches(self, error: BaseException) -> bool:
        return isinstance(error, self.error_types)


class ErrorMessageMatcher(ErrorMatcher):
    """Matches on the error message, by regex or plain substring."""

    def __init__(self, pattern: Union[str, "re.Pattern[str]"]):
        self.pattern = pattern

    def matches(self, error: BaseException) -> bool:
        message = str(error)
        if isinstance(self.pattern, re.Pattern):
            return bool(self.pattern.search(message))
        return self.pattern in message


def _response_of(error: BaseException):
    if isinstance(error, httpx.HTTPStatusError):
        return error.response
    return getattr(error, "response", None)


def status_code_of(error: BaseException) -> Optional[int]:
    response = _response_of(error)
    if response is None:
        return getattr(error, "status_code", None)
    status = getattr(response, "status_code", None)
    if status is None:
        status = getattr(response, "status", None)
    return status


class HttpStatusMatcher(ErrorMatcher):
    def __init__(self, statuses: Optional[Sequence[int]] = None):
        self.statuses = tuple(statuses or RETRYABLE_STATUSES)

    def matches(self, error: BaseException) -> bool:
        return status_code_of(error) in self.statuses


class RateLimitMatcher(ErrorMatcher):
    """Matches HTTP 429, rate limit headers or rate limit wording."""

    def matches(self, error: BaseException) -> bool:
        if status_code_of(error) == 429:
            return True

        response = _response_of(error)
        headers = getattr(response, "headers", None) if response is not None else None
        if headers:
            if headers.get("x-ratelimit-remaining") == "0":
                return True
            if headers.get("retry-after"):
                return True

        message = str(error).lower()
        return any(keyword in message for keyword in RATE_LIMIT_KEYWORDS)


class TimeoutMatcher(ErrorMatcher):
    def matches(self, error: BaseException) -> bool:
        return isinstance(error, (TimeoutError, httpx.TimeoutException))


class CompositeMatcher(ErrorMatcher):
    """Combines matchers with ``any`` (OR) or ``all`` (AND)."""

    def __init__(self, matchers: Sequence[ErrorMatcher], operator: str = "any"):
        if operator not in ("any", "all"):
            raise ValueError(f"Unknown composite operator: {operator}")
        self.matchers = list(matchers)
        self.operator = operator

    def matches(self, error: BaseException) -> bool:
        results = (matcher.matches(error) for matcher in self.matchers)
        return all(results) if self.operator == "all" else any(results)


def transient_matcher() -> CompositeMatcher:
    """Timeouts, connection failures, retryable HTTP statuses and rate limits."""
    return CompositeMatcher(
        [
            ErrorTypeMatcher([RetryableError, ConnectionError, httpx.TransportError]),
            TimeoutMatcher(),
            HttpStatusMatcher(),
            RateLimitMatcher(),
        ],
        operator="any",
    )


__all__ = [
    "RETRYABLE_STATUSES",
    "AlwaysMatcher",
    "CompositeMatcher",
    "ErrorMatcher",
    "ErrorMessageMatcher",
    "ErrorTypeMatcher",
    "HttpStatusMatcher",
    "RateLimitMatcher",
    "TimeoutMatcher",
    "status_code_of",
    "transient_matcher",
]
