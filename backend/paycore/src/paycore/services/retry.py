"""Retry policy for gateway calls.

Only operations that fail with a retryable error are retried; validation
failures and declined payments fail on the first attempt. The policy wraps
gateway HTTP calls only. Ledger writes are idempotent and never retried here.

Usage:
    policy = gateway_call_policy(config.policy)
    result = policy.execute(lambda: adapter.create_payment(request))
    if not result.success:
        raise result.error
"""

import logging
import random
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict

from paycore.models import TransientGatewayError

if TYPE_CHECKING:
    from paycore.config import PaymentPolicy

logger = logging.getLogger(__name__)

R = TypeVar("R")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 30.0
DEFAULT_BACKOFF_MULTIPLIER = 2.0
JITTER_RATIO = 0.1

# Status lookups poll a settling payment, so they try longer but wait less
VERIFICATION_EXTRA_ATTEMPTS = 2
VERIFICATION_MAX_DELAY = 5.0


def is_transient(error: BaseException) -> bool:
    """Default predicate: only errors raised as transient by the adapters."""
    return isinstance(error, TransientGatewayError)


class RetryResult(BaseModel, Generic[R]):
    """Outcome of a retried operation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    attempts: int
    value: R | None = None
    error: Exception | None = None
    total_time: float = 0.0


class RetryPolicy:
    """Exponential backoff with jitter around a retryable-error predicate."""

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
        is_retryable: Callable[[BaseException], bool] = is_transient,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.backoff_multiplier = backoff_multiplier
        self.is_retryable = is_retryable
        self.sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based), jitter included."""
        delay = self.base_delay * self.backoff_multiplier ** (attempt - 1)
        delay += delay * JITTER_RATIO * random.random()
        return min(delay, self.max_delay)

    def execute(self, operation: Callable[[], R], name: str = "operation") -> RetryResult[R]:
        """Run ``operation`` until it succeeds, fails permanently or attempts run out.

        Args:
            operation: Zero-argument callable
            name: Label used in log messages

        Returns:
            RetryResult carrying the value or the last error.
        """
        started = time.monotonic()
        attempt = 0
        while True:
            attempt += 1
            try:
                value = operation()
                return RetryResult(
                    success=True,
                    attempts=attempt,
                    value=value,
                    total_time=time.monotonic() - started,
                )
            except Exception as e:
                if not self.is_retryable(e):
                    logger.info("%s failed with non-retryable error: %s", name, e)
                    return self._failure(attempt, e, started)

                if attempt >= self.max_attempts:
                    logger.error("All %d attempts failed for %s: %s", attempt, name, e)
                    return self._failure(attempt, e, started)

                wait_time = self.delay_for(attempt)
                logger.warning(
                    "Attempt %d/%d failed for %s: %s. Retrying in %.2fs",
                    attempt,
                    self.max_attempts,
                    name,
                    e,
                    wait_time,
                )
                self.sleep(wait_time)

    @staticmethod
    def _failure(attempts: int, error: Exception, started: float) -> RetryResult[Any]:
        return RetryResult(
            success=False,
            attempts=attempts,
            error=error,
            total_time=time.monotonic() - started,
        )


def execute_with_retry(
    operation: Callable[[], R],
    max_retries: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
) -> RetryResult[R]:
    """Run ``operation`` with the default backoff and transient-error predicate."""
    return RetryPolicy(max_attempts=max_retries, base_delay=base_delay).execute(operation)


def gateway_call_policy(policy: "PaymentPolicy | None" = None) -> RetryPolicy:
    """Policy for creating payments and capturing orders."""
    if policy is None:
        return RetryPolicy()
    return RetryPolicy(
        max_attempts=policy.max_retry_attempts,
        base_delay=policy.retry_base_delay,
        max_delay=policy.retry_max_delay,
    )


def verification_policy(policy: "PaymentPolicy | None" = None) -> RetryPolicy:
    """Policy for status lookups: more attempts, shorter delays."""
    max_attempts = policy.max_retry_attempts if policy else DEFAULT_MAX_ATTEMPTS
    base_delay = policy.retry_base_delay if policy else DEFAULT_BASE_DELAY
    max_delay = policy.retry_max_delay if policy else DEFAULT_MAX_DELAY
    return RetryPolicy(
        max_attempts=max_attempts + VERIFICATION_EXTRA_ATTEMPTS,
        base_delay=base_delay / 2,
        max_delay=min(max_delay, VERIFICATION_MAX_DELAY),
    )
