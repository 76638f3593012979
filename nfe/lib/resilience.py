"""Retry orchestration for API requests.

Wraps a single request coroutine in a bounded retry loop with exponential
backoff and jitter. Retryability is decided from the error taxonomy in
:mod:`nfe.lib.errors`: rate limits, 401s, 5xx and network failures are
retried; other 4xx are caller mistakes and fail immediately.

Implementation: Uses tenacity's AsyncRetrying for the loop itself.
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import tenacity
from tenacity.wait import wait_base

from nfe.lib.errors import ErrorKind, NfeError

logger = logging.getLogger(__name__)

__all__ = [
    "RetryPolicy",
    "is_retryable",
    "retry_async",
    "wait_backoff_with_jitter",
]

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[Any]]

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_MS = 1000
DEFAULT_MAX_DELAY_MS = 30000
DEFAULT_BACKOFF_MULTIPLIER = 2.0
JITTER_FRACTION = 0.1

_ALWAYS_RETRY = {ErrorKind.SERVER, ErrorKind.CONNECTION, ErrorKind.TIMEOUT}


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration.

    Attempts run from 0 to ``max_retries`` inclusive, so a policy with
    ``max_retries=3`` issues at most four requests.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay_ms: float = DEFAULT_BASE_DELAY_MS
    max_delay_ms: float = DEFAULT_MAX_DELAY_MS
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER

    @classmethod
    def none(cls) -> "RetryPolicy":
        """No retry - fail on the first error."""
        return cls(max_retries=0)

    def exponential_delay(self, attempt: int) -> float:
        """Un-jittered delay in milliseconds after ``attempt`` (0-based) fails.

        Saturates at infinity instead of raising for very large attempts.
        """
        try:
            return self.base_delay_ms * (self.backoff_multiplier ** attempt)
        except OverflowError:
            return math.inf

    def compute_delay(self, attempt: int, rng: Optional[random.Random] = None) -> float:
        """Delay in milliseconds before the attempt following ``attempt``.

        ``min(exponential + jitter, max_delay_ms)`` where jitter is uniform in
        ``[0, 0.1 * exponential)``.
        """
        exponential = self.exponential_delay(attempt)
        if exponential >= self.max_delay_ms:
            return self.max_delay_ms
        jitter = (rng or random).random() * JITTER_FRACTION * exponential
        return min(exponential + jitter, self.max_delay_ms)

    def validation_errors(self) -> list[str]:
        errors: list[str] = []
        if self.max_retries < 0:
            errors.append("max_retries must be >= 0")
        if self.base_delay_ms < 0:
            errors.append("base_delay_ms must be >= 0")
        if self.max_delay_ms < 0:
            errors.append("max_delay_ms must be >= 0")
        if self.backoff_multiplier <= 1:
            errors.append("backoff_multiplier must be > 1")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_retries": self.max_retries,
            "base_delay_ms": self.base_delay_ms,
            "max_delay_ms": self.max_delay_ms,
            "backoff_multiplier": self.backoff_multiplier,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetryPolicy":
        """Create from dictionary; missing keys fall back to defaults."""
        return cls(
            max_retries=int(data.get("max_retries", DEFAULT_MAX_RETRIES)),
            base_delay_ms=float(data.get("base_delay_ms", DEFAULT_BASE_DELAY_MS)),
            max_delay_ms=float(data.get("max_delay_ms", DEFAULT_MAX_DELAY_MS)),
            backoff_multiplier=float(
                data.get("backoff_multiplier", DEFAULT_BACKOFF_MULTIPLIER)
            ),
        )


def is_retryable(exc: BaseException) -> bool:
    """Decide whether a failed attempt may succeed if repeated.

    - Rate limits are always retryable.
    - 4xx responses are not, except 401 (transient credential races).
    - Server, connection and timeout errors are retryable.
    - Anything that is not an NfeError is a programming error and is not.
    """
    if not isinstance(exc, NfeError):
        return False

    if exc.kind is ErrorKind.RATE_LIMIT:
        return True

    if exc.status is not None and 400 <= exc.status < 500:
        return exc.status == 401

    if exc.kind in _ALWAYS_RETRY:
        return True

    return exc.status is not None and exc.status >= 500


class wait_backoff_with_jitter(wait_base):
    """Tenacity wait strategy applying :meth:`RetryPolicy.compute_delay`."""

    def __init__(self, policy: RetryPolicy, rng: Optional[random.Random] = None) -> None:
        self.policy = policy
        self.rng = rng

    def __call__(self, retry_state: tenacity.RetryCallState) -> float:
        # attempt_number is 1-based; the delay formula is keyed on the
        # 0-based index of the attempt that just failed
        attempt = retry_state.attempt_number - 1
        return self.policy.compute_delay(attempt, self.rng) / 1000.0


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    operation_name: str = "request",
    sleep: Optional[Sleep] = None,
    rng: Optional[random.Random] = None,
) -> T:
    """Run ``operation`` under ``policy``.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt
        policy: Retry limits and backoff parameters
        operation_name: Label used in log messages
        sleep: Awaitable sleep (seconds); defaults to asyncio.sleep
        rng: Random source for jitter

    Returns:
        Result of the first successful attempt

    Raises:
        NfeError: The last error once attempts are exhausted, or the first
            non-retryable error
    """
    total_attempts = policy.max_retries + 1

    def before_sleep_handler(retry_state: tenacity.RetryCallState) -> None:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "%s attempt %d/%d failed: %s. Retrying in %.2fs...",
            operation_name,
            retry_state.attempt_number,
            total_attempts,
            exception,
            retry_state.next_action.sleep if retry_state.next_action else 0,
        )

    retryer = tenacity.AsyncRetrying(
        sleep=sleep or asyncio.sleep,
        stop=tenacity.stop_after_attempt(total_attempts),
        wait=wait_backoff_with_jitter(policy, rng),
        retry=tenacity.retry_if_exception(is_retryable),
        before_sleep=before_sleep_handler,
        reraise=True,
    )

    try:
        return await retryer(operation)
    except tenacity.RetryError as exc:
        last = exc.last_attempt.exception() if exc.last_attempt else None
        if isinstance(last, NfeError):
            raise last from None
        raise NfeError(
            ErrorKind.CONNECTION,
            "Request failed after all retries",
            cause=last,
        ) from exc
    except NfeError as exc:
        if is_retryable(exc):
            logger.error(
                "%s failed after %d attempt(s): %s",
                operation_name,
                total_attempts,
                exc,
            )
        raise
