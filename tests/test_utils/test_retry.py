"""
Tests for the retry helper.

What we test
------------
1. RetryPolicy bounds and the backoff curve it hands to tenacity.
2. call_with_retry: success after transient failures, exhaustion re-raises
   the last error, non-matching and give-up exceptions are not retried.
"""

from __future__ import annotations

import pytest

from dividend_advisor.utils.retry import NO_RETRY, RetryPolicy, call_with_retry


class Flaky:
    def __init__(self, failures: int, exc_type: type[Exception] = ConnectionError) -> None:
        self.failures = failures
        self.exc_type = exc_type
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc_type(f"failure {self.calls}")
        return "ok"


class TestRetryPolicy:
    def test_backoff_curve_is_capped(self):
        sleeps: list[float] = []
        policy = RetryPolicy(max_attempts=5, base_delay_seconds=0.5, backoff_factor=2.0, max_delay_seconds=3.0)
        with pytest.raises(ConnectionError):
            call_with_retry(Flaky(failures=9), policy, sleep=sleeps.append)
        assert sleeps == [0.5, 1.0, 2.0, 3.0]

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_rejects_negative_delay(self):
        with pytest.raises(ValueError):
            RetryPolicy(base_delay_seconds=-1.0)


class TestCallWithRetry:
    def test_succeeds_after_transient_failures(self):
        sleeps: list[float] = []
        fn = Flaky(failures=2)
        result = call_with_retry(fn, RetryPolicy(max_attempts=3, base_delay_seconds=0.1), sleep=sleeps.append)
        assert result == "ok"
        assert fn.calls == 3
        assert sleeps == [0.1, 0.2]

    def test_exhaustion_reraises_last_error(self):
        fn = Flaky(failures=5)
        with pytest.raises(ConnectionError, match="failure 3"):
            call_with_retry(fn, RetryPolicy(max_attempts=3, base_delay_seconds=0.0), sleep=lambda s: None)
        assert fn.calls == 3

    def test_no_retry_policy(self):
        fn = Flaky(failures=1)
        with pytest.raises(ConnectionError):
            call_with_retry(fn, NO_RETRY, sleep=lambda s: None)
        assert fn.calls == 1

    def test_non_matching_error_not_retried(self):
        fn = Flaky(failures=1, exc_type=KeyError)
        with pytest.raises(KeyError):
            call_with_retry(
                fn, RetryPolicy(base_delay_seconds=0.0), retry_on=(ConnectionError,), sleep=lambda s: None
            )
        assert fn.calls == 1

    def test_give_up_on_wins(self):
        fn = Flaky(failures=1, exc_type=TimeoutError)
        with pytest.raises(TimeoutError):
            call_with_retry(
                fn, RetryPolicy(base_delay_seconds=0.0), give_up_on=(TimeoutError,), sleep=lambda s: None
            )
        assert fn.calls == 1
