"""
Explicit retry policy for idempotent external calls.

Used for market-data lookups, provider refresh jobs, and recommendation
persistence.  The reasoning-model invocation is never retried: a retry
there means a whole new pipeline run with a new correlation id.

``RetryPolicy`` is the frozen, config-derived description; ``call_with_retry``
turns it into a ``tenacity.Retrying`` loop.  Backoff has no jitter, so test
timing is reproducible::

    wait after failed attempt n = min(base_delay_seconds * backoff_factor ** (n - 1),
                                      max_delay_seconds)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try an idempotent call and how long to wait between tries.

    Attributes:
        max_attempts:       Total attempts including the first (>= 1).
        base_delay_seconds: Wait after the first failed attempt.
        backoff_factor:     Multiplier applied per subsequent failure.
        max_delay_seconds:  Upper bound on any single wait.
    """

    max_attempts: int = 3
    base_delay_seconds: float = 0.5
    backoff_factor: float = 2.0
    max_delay_seconds: float = 15.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}.")
        if self.base_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("Retry delays must be non-negative.")

    def stop(self) -> stop_after_attempt:
        return stop_after_attempt(self.max_attempts)

    def wait(self) -> wait_exponential:
        return wait_exponential(
            multiplier=self.base_delay_seconds,
            exp_base=self.backoff_factor,
            max=self.max_delay_seconds,
        )


NO_RETRY = RetryPolicy(max_attempts=1, base_delay_seconds=0.0)


def _log_before_sleep(label: str, policy: RetryPolicy) -> Callable[[RetryCallState], None]:
    def log(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        logger.info(
            "%s attempt %d/%d failed (%s); retrying in %.2fs",
            label,
            state.attempt_number,
            policy.max_attempts,
            type(exc).__name__,
            state.next_action.sleep if state.next_action else 0.0,
        )

    return log


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    give_up_on: tuple[type[BaseException], ...] = (),
    sleep: Callable[[float], None] = time.sleep,
    label: str = "call",
) -> T:
    """Call ``fn`` until it succeeds or the policy is exhausted.

    Args:
        fn:         Zero-argument callable to invoke.
        policy:     Attempt count and backoff curve.
        retry_on:   Exception types that trigger another attempt.
        give_up_on: Exception types re-raised immediately even if they match
                    ``retry_on``.
        sleep:      Injected for tests.
        label:      Name used in log lines.

    Returns:
        Whatever ``fn`` returns on its first successful attempt.

    Raises:
        The last exception raised by ``fn`` once attempts are exhausted, or
        any non-retryable exception immediately.
    """
    retrying = Retrying(
        stop=policy.stop(),
        wait=policy.wait(),
        retry=retry_if_exception_type(retry_on) & retry_if_not_exception_type(give_up_on),
        sleep=sleep,
        before_sleep=_log_before_sleep(label, policy),
        reraise=True,
    )
    try:
        return retrying(fn)
    except retry_on as exc:
        if not isinstance(exc, give_up_on):
            logger.warning(
                "%s failed after %d attempt(s): %s",
                label,
                retrying.statistics.get("attempt_number", 1),
                type(exc).__name__,
            )
        raise
