import httpx
import pytest

from stepwright.errors import ConfigurationError, RetryableError, StepNotFoundError
from stepwright.events import EventNotifier
from stepwright.retry import (
    CompositeMatcher,
    ConstantDelayStrategy,
    ErrorMessageMatcher,
    ErrorTypeMatcher,
    ExponentialBackoffStrategy,
    HttpStatusMatcher,
    InstrumentationHandler,
    LinearBackoffStrategy,
    NoDelayStrategy,
    RateLimitMatcher,
    Retryable,
    RetryPolicy,
    TimeoutMatcher,
    build_policy,
    transient_matcher,
)


def _always_failing(calls):
    def block():
        calls.append(1)
        raise RuntimeError("boom")

    return block


def _status_error(status, headers=None):
    request = httpx.Request("GET", "https://example.test")
    response = httpx.Response(status, headers=headers, request=request)
    return httpx.HTTPStatusError("request failed", request=request, response=response)


def test_exponential_backoff_is_capped():
    strategy = ExponentialBackoffStrategy(multiplier=2)
    delays = [strategy.calculate(n, 1, 5) for n in range(1, 6)]
    assert delays == [1, 2, 4, 5, 5]


def test_other_strategies():
    assert [LinearBackoffStrategy().calculate(n, 2, 7) for n in (1, 2, 3, 4)] == [2, 4, 6, 7]
    assert LinearBackoffStrategy(increment=1).calculate(3, 2, 60) == 4
    assert ConstantDelayStrategy().calculate(9, 3, 60) == 3
    assert NoDelayStrategy().calculate(9, 3, 60) == 0


def test_always_failing_block_runs_max_attempts_plus_one():
    calls = []
    sleeps = []
    policy = RetryPolicy(max_attempts=3, base_delay=1, max_delay=5)
    with pytest.raises(RuntimeError, match="boom"):
        Retryable(policy, sleep=sleeps.append).execute(_always_failing(calls))
    assert len(calls) == 4
    assert sleeps == [1, 2, 4]


def test_non_idempotent_policy_attempts_once():
    calls = []
    policy = RetryPolicy(max_attempts=5, idempotent=False)
    with pytest.raises(RuntimeError):
        Retryable(policy, sleep=lambda _: None).execute(_always_failing(calls))
    assert len(calls) == 1


def test_fatal_errors_are_never_retried():
    policy = RetryPolicy(max_attempts=3)
    assert not policy.should_retry(ConfigurationError("bad"), 1)
    assert not policy.should_retry(StepNotFoundError("missing_step"), 1)
    assert policy.should_retry(RuntimeError("transient"), 1)


def test_success_after_retry_records_metrics():
    attempts = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise RetryableError("try again")
        return "done"

    retryable = Retryable(RetryPolicy(max_attempts=3, base_delay=0), sleep=lambda _: None)
    assert retryable.execute(flaky) == "done"
    assert retryable.metrics.attempts == 3
    assert retryable.metrics.retries == 2
    assert retryable.metrics.success_rate == 100


def test_retry_after_is_a_floor_and_jitter_stays_within_ten_percent():
    policy = RetryPolicy(strategy=ConstantDelayStrategy(), base_delay=1)
    assert policy.delay_for(1, RetryableError("slow down", retry_after=7)) == 7

    jittered = RetryPolicy(strategy=ConstantDelayStrategy(), base_delay=10, jitter=True)
    for _ in range(20):
        assert 9 <= jittered.delay_for(1) <= 11


def test_matchers():
    assert ErrorTypeMatcher(["ValueError"]).matches(ValueError("x"))
    assert ErrorTypeMatcher(["StepNotFoundError"]).matches(StepNotFoundError("x"))
    assert ErrorMessageMatcher("timed out").matches(RuntimeError("request timed out"))
    assert HttpStatusMatcher().matches(_status_error(503))
    assert not HttpStatusMatcher().matches(_status_error(404))
    assert RateLimitMatcher().matches(_status_error(429))
    assert RateLimitMatcher().matches(_status_error(403, {"x-ratelimit-remaining": "0"}))
    assert RateLimitMatcher().matches(RuntimeError("Rate limit exceeded"))
    assert TimeoutMatcher().matches(httpx.ReadTimeout("slow"))
    assert transient_matcher().matches(ConnectionError("reset"))
    assert not transient_matcher().matches(KeyError("x"))


def test_composite_matcher_operators():
    matchers = [ErrorTypeMatcher([RuntimeError]), ErrorMessageMatcher("boom")]
    assert CompositeMatcher(matchers, operator="all").matches(RuntimeError("boom"))
    assert not CompositeMatcher(matchers, operator="all").matches(RuntimeError("bang"))
    assert CompositeMatcher(matchers, operator="any").matches(ValueError("boom"))
    with pytest.raises(ValueError):
        CompositeMatcher(matchers, operator="xor")


def test_build_policy_from_config():
    policy = build_policy(
        {
            "strategy": {"type": "linear", "increment": 2},
            "max_attempts": 5,
            "base_delay": 1,
            "max_delay": 10,
            "matcher": {"type": "error_type", "errors": ["TimeoutError"]},
            "handlers": ["logging", {"type": "instrumentation", "namespace": "fetch"}],
        }
    )
    assert isinstance(policy.strategy, LinearBackoffStrategy)
    assert policy.max_attempts == 5
    assert policy.matcher.matches(TimeoutError())
    assert not policy.matcher.matches(KeyError())
    assert len(policy.handlers) == 2


def test_build_policy_shorthands():
    assert build_policy(2).max_attempts == 2
    assert not build_policy(False).should_retry(RuntimeError(), 1)
    assert build_policy(None).max_attempts == 3


@pytest.mark.parametrize(
    "config",
    [
        {"strategy": "fibonacci"},
        {"matcher": "sometimes"},
        {"handlers": ["carrier_pigeon"]},
        "three",
    ],
)
def test_build_policy_rejects_unknown_names(config):
    with pytest.raises(ConfigurationError):
        build_policy(config)


def test_instrumentation_handler_publishes_events():
    notifier = EventNotifier()
    seen = []
    notifier.subscribe("fetch.*", lambda event, payload: seen.append(event))
    policy = RetryPolicy(
        max_attempts=1,
        base_delay=0,
        handlers=(InstrumentationHandler(namespace="fetch", notifier=notifier),),
    )
    with pytest.raises(RuntimeError):
        Retryable(policy, sleep=lambda _: None).execute(_always_failing([]))
    assert seen == ["fetch.attempt", "fetch.retry", "fetch.attempt", "fetch.failure"]
