"""Retry policy and exponential backoff for HTTP calls."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from nfeio.core.constants import (
    HTTP_MAX_RETRIES,
    HTTP_RETRY_BACKOFF_MULTIPLIER,
    HTTP_RETRY_BASE_DELAY_SEC,
    HTTP_RETRY_JITTER_RATIO,
    HTTP_RETRY_MAX_DELAY_SEC,
)
from nfeio.core.exceptions import (
    PERMANENT_ERRORS,
    TRANSIENT_ERRORS,
    ConfigurationError,
    ConnectionError,
    NfeError,
    RateLimitError,
)
from nfeio.core.logger import logger

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget and backoff shape, constant for a client configuration."""

    max_retries: int = HTTP_MAX_RETRIES
    base_delay: float = HTTP_RETRY_BASE_DELAY_SEC
    max_delay: float = HTTP_RETRY_MAX_DELAY_SEC
    backoff_multiplier: float = HTTP_RETRY_BACKOFF_MULTIPLIER

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ConfigurationError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ConfigurationError("Retry delays must be >= 0")
        if self.backoff_multiplier < 1:
            raise ConfigurationError(
                f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}"
            )


def should_retry(error: NfeError, attempt: int, max_retries: int) -> bool:
    """Decide whether ``error`` raised on ``attempt`` (0-indexed) deserves another try.

    Rate limits are always retried while budget remains, sharing the budget
    with server errors. Every other 4xx is permanent.
    """
    if attempt >= max_retries:
        return False

    if isinstance(error, RateLimitError):
        return True

    if isinstance(error, PERMANENT_ERRORS):
        return False
    if error.status_code is not None and 400 <= error.status_code < 500:
        return False

    return isinstance(error, TRANSIENT_ERRORS)


def compute_backoff_delay(
    attempt: int,
    policy: RetryPolicy,
    rng: Callable[[], float] = random.random,
) -> float:
    """Exponential delay for ``attempt`` plus up to 10% jitter, capped at ``max_delay``."""
    exponential = policy.base_delay * policy.backoff_multiplier**attempt
    jitter = rng() * HTTP_RETRY_JITTER_RATIO * exponential
    return min(exponential + jitter, policy.max_delay)


async def with_retry(
    attempt_fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Sleep = asyncio.sleep,
    rng: Callable[[], float] = random.random,
) -> T:
    """Run ``attempt_fn`` until it succeeds or the policy says stop.

    Raises:
        NfeError: the last classified error observed, or a generic
            ConnectionError when no attempt ever completed.
    """
    last_error: NfeError | None = None

    for attempt in range(policy.max_retries + 1):
        try:
            return await attempt_fn()
        except NfeError as error:
            last_error = error
            if not should_retry(error, attempt, policy.max_retries):
                raise

            delay = compute_backoff_delay(attempt, policy, rng)
            logger.warning(
                "%s on attempt %d/%d, retrying in %.2fs: %s",
                type(error).__name__,
                attempt + 1,
                policy.max_retries + 1,
                delay,
                error.message,
            )
            await sleep(delay)

    raise last_error or ConnectionError("Request failed after all retries")
