"""
Retry utility functions with bounded exponential backoff and jitter.
Categorizes errors as transient (retryable) or permanent (non-retryable).
"""

import asyncio
import random
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from vinesync.config import settings

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
JITTER_RATIO = 0.25


class RetryPolicy(BaseModel):
    """Immutable retry configuration shared by API clients."""

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=0)
    initial_delay: float = Field(default=1.0, ge=0, description="Seconds before the first retry")
    max_delay: float = Field(default=10.0, ge=0, description="Ceiling for any single backoff")
    backoff_multiplier: float = Field(default=2.0, gt=1)
    retryable_status_codes: frozenset[int] = DEFAULT_RETRYABLE_STATUS_CODES

    @field_validator("retryable_status_codes", mode="before")
    @classmethod
    def _coerce_status_codes(cls, value: Iterable[int]) -> frozenset[int]:
        return frozenset(int(code) for code in value)

    @model_validator(mode="after")
    def _check_delay_bounds(self) -> "RetryPolicy":
        if self.initial_delay > self.max_delay:
            raise ValueError("initial_delay must not exceed max_delay")
        return self

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        """Build the policy from environment configuration."""
        return cls(
            max_retries=settings.max_retry_attempts,
            initial_delay=settings.retry_initial_delay_seconds,
            max_delay=settings.retry_max_delay_seconds,
            backoff_multiplier=settings.retry_backoff_multiplier,
            retryable_status_codes=settings.retry_status_codes,
        )


class RetryPresets:
    """Named retry policies for common situations."""

    # Balanced for most use cases
    DEFAULT = RetryPolicy()

    # More attempts with shorter delays; also retries request timeouts (408)
    AGGRESSIVE = RetryPolicy(
        max_retries=5,
        initial_delay=0.5,
        max_delay=8.0,
        backoff_multiplier=1.5,
        retryable_status_codes={408, 429, 500, 502, 503, 504},
    )

    # Fewer attempts with longer delays; rate limits are not retried
    CONSERVATIVE = RetryPolicy(
        max_retries=2,
        initial_delay=2.0,
        max_delay=15.0,
        backoff_multiplier=3.0,
        retryable_status_codes={500, 502, 503, 504},
    )

    # Fail immediately on any error
    NO_RETRY = RetryPolicy(
        max_retries=0,
        initial_delay=0.0,
        max_delay=0.0,
        retryable_status_codes=set(),
    )


def compute_base_delay(attempt_index: int, policy: RetryPolicy) -> float:
    """
    Exponential delay for a retry attempt, capped at policy.max_delay.

    Args:
        attempt_index: Zero-based index of the attempt that just failed
        policy: Retry policy

    Returns:
        Delay in seconds, without jitter
    """
    if attempt_index < 0:
        raise ValueError("attempt_index must be >= 0")
    try:
        exponential = policy.initial_delay * policy.backoff_multiplier**attempt_index
    except OverflowError:
        return policy.max_delay
    return min(exponential, policy.max_delay)


def compute_delay(attempt_index: int, policy: RetryPolicy, rng: random.Random = None) -> float:
    """
    Delay before the next retry: the capped exponential delay plus up to 25% jitter.

    The jitter keeps several accounts that fail at the same moment from
    retrying in lockstep.

    Args:
        attempt_index: Zero-based index of the attempt that just failed
        policy: Retry policy
        rng: Random source (injectable for deterministic tests)

    Returns:
        Delay in seconds, in [capped, capped * 1.25]
    """
    capped = compute_base_delay(attempt_index, policy)
    jitter = (rng or random).uniform(0, JITTER_RATIO * capped)
    return capped + jitter


class wait_policy_backoff(wait_base):
    """Tenacity wait strategy driven by a RetryPolicy."""

    def __init__(self, policy: RetryPolicy, rng: random.Random = None):
        self.policy = policy
        self.rng = rng

    def __call__(self, retry_state: RetryCallState) -> float:
        return compute_delay(retry_state.attempt_number - 1, self.policy, self.rng)


def is_transient_error(
    exception: BaseException,
    retryable_status_codes: Iterable[int] = DEFAULT_RETRYABLE_STATUS_CODES,
) -> bool:
    """
    Determine if an exception represents a transient error that should be retried.

    Args:
        exception: The exception to check
        retryable_status_codes: HTTP status codes considered transient

    Returns:
        True if error is transient (retryable), False otherwise
    """
    # Network/connection errors are transient (no response was received)
    if isinstance(exception, httpx.TransportError):
        return True

    # Errors that already carry their own classification
    is_retryable = getattr(exception, "is_retryable", None)
    if is_retryable is not None:
        return bool(is_retryable)

    if isinstance(exception, httpx.HTTPStatusError):
        return exception.response.status_code in set(retryable_status_codes)

    if isinstance(exception, TimeoutError):
        return True

    # Default to non-retryable for unknown errors
    return False


def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = None,
    rng: random.Random = None,
    operation_name: str = None,
) -> Callable[[], Awaitable[T]]:
    """
    Wrap a zero-argument async operation with retry and backoff.
    Only transient errors are retried; the last error is re-raised once
    policy.max_retries retries are used up.

    Args:
        operation: Async callable performing a single attempt
        policy: Retry policy
        sleep: Async sleep function (injectable for tests)
        rng: Random source for jitter
        operation_name: Label used in retry log lines

    Returns:
        Async callable running the operation under the policy
    """

    def _retryable(exception: BaseException) -> bool:
        return is_transient_error(exception, policy.retryable_status_codes)

    def _log_retry_attempt(retry_state: RetryCallState):
        """Log retry attempt before sleeping."""
        if retry_state.outcome is not None:
            exception = retry_state.outcome.exception()
            logger.warning(
                "Retrying after transient error",
                operation=operation_name,
                attempt=retry_state.attempt_number,
                max_attempts=policy.max_attempts,
                exception=str(exception),
                wait_time=retry_state.next_action.sleep if retry_state.next_action else 0,
            )

    async def attempt() -> T:
        # operation may be a plain callable returning an awaitable
        return await operation()

    async def wrapper() -> T:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_policy_backoff(policy, rng),
            retry=retry_if_exception(_retryable),
            reraise=True,
            before_sleep=_log_retry_attempt,
            sleep=sleep or asyncio.sleep,
        )
        return await retrying(attempt)

    return wrapper
