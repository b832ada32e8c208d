"""Polling engine for operations the API completes out-of-band.

A poll ends in exactly one of three outcomes:

* :class:`Completed` - the completion predicate matched;
* :class:`Failed` - the failure predicate matched (the server reported a
  business failure);
* :class:`TimedOut` - the time or attempt budget ran out. The remote side may
  still finish later, so this is "unknown", never "failed".
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar, Union

from nfeio.core.constants import (
    POLLING_BACKOFF_FACTOR,
    POLLING_INITIAL_DELAY_SEC,
    POLLING_MAX_ATTEMPTS,
    POLLING_MAX_DELAY_SEC,
    POLLING_TIMEOUT_SEC,
)
from nfeio.core.exceptions import (
    PERMANENT_ERRORS,
    ConfigurationError,
    InvoiceProcessingError,
    NfeError,
    NotFoundError,
)
from nfeio.core.logger import logger

T = TypeVar("T")


@dataclass(frozen=True)
class PollingOptions:
    """Delay and budget knobs for one poll, without the predicates."""

    initial_delay: float = POLLING_INITIAL_DELAY_SEC
    max_delay: float = POLLING_MAX_DELAY_SEC
    backoff_factor: float = POLLING_BACKOFF_FACTOR
    timeout: float = POLLING_TIMEOUT_SEC
    max_attempts: int = POLLING_MAX_ATTEMPTS
    on_poll: Callable[[int, Any], None] | None = None


@dataclass(frozen=True)
class PollingSpec(Generic[T]):
    fetch: Callable[[], Awaitable[T]]
    is_complete: Callable[[T], bool]
    is_failed: Callable[[T], bool] | None = None
    initial_delay: float = POLLING_INITIAL_DELAY_SEC
    max_delay: float = POLLING_MAX_DELAY_SEC
    backoff_factor: float = POLLING_BACKOFF_FACTOR
    timeout: float = POLLING_TIMEOUT_SEC
    max_attempts: int = POLLING_MAX_ATTEMPTS
    on_poll: Callable[[int, T], None] | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.timeout <= 0:
            raise ConfigurationError(f"Polling timeout must be > 0, got {self.timeout}")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ConfigurationError("Polling delays must be >= 0")
        if self.backoff_factor < 1:
            raise ConfigurationError(f"backoff_factor must be >= 1, got {self.backoff_factor}")

    @classmethod
    def from_options(
        cls,
        fetch: Callable[[], Awaitable[T]],
        is_complete: Callable[[T], bool],
        is_failed: Callable[[T], bool] | None = None,
        options: PollingOptions | None = None,
    ) -> "PollingSpec[T]":
        options = options or PollingOptions()
        return cls(
            fetch=fetch,
            is_complete=is_complete,
            is_failed=is_failed,
            initial_delay=options.initial_delay,
            max_delay=options.max_delay,
            backoff_factor=options.backoff_factor,
            timeout=options.timeout,
            max_attempts=options.max_attempts,
            on_poll=options.on_poll,
        )


@dataclass(frozen=True)
class Completed(Generic[T]):
    value: T
    attempts: int


@dataclass(frozen=True)
class Failed(Generic[T]):
    value: T
    error: InvoiceProcessingError
    attempts: int


@dataclass(frozen=True)
class TimedOut(Generic[T]):
    attempts: int
    elapsed: float
    last_value: T | None = None


PollOutcome = Union[Completed[T], Failed[T], TimedOut[T]]


def next_delay(delay: float, spec: PollingSpec) -> float:
    return min(delay * spec.backoff_factor, spec.max_delay)


def _notify(spec: PollingSpec[T], attempt: int, value: T) -> None:
    if spec.on_poll is None:
        return
    try:
        spec.on_poll(attempt, value)
    except Exception:  # noqa: BLE001
        logger.exception("on_poll callback failed on attempt %d", attempt)


async def poll(
    spec: PollingSpec[T],
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> PollOutcome[T]:
    """Drive ``spec.fetch`` until a terminal outcome.

    Classified errors raised by ``fetch`` are retried on the next cycle and
    propagate on the last allowed attempt. Permanent errors (bad request,
    auth, conflict) propagate at once; ``NotFoundError`` is retried because a
    freshly enqueued resource may not be readable yet.
    """
    started = clock()
    delay = spec.initial_delay
    attempt = 0
    last_value: T | None = None

    while True:
        attempt += 1
        try:
            value = await spec.fetch()
        except NfeError as error:
            if isinstance(error, PERMANENT_ERRORS) and not isinstance(error, NotFoundError):
                raise
            elapsed = clock() - started
            if attempt >= spec.max_attempts or elapsed + delay > spec.timeout:
                raise
            logger.info(
                "Poll attempt %d failed with %s, retrying in %.2fs",
                attempt,
                type(error).__name__,
                delay,
            )
            await sleep(delay)
            delay = next_delay(delay, spec)
            continue

        last_value = value
        _notify(spec, attempt, value)

        if spec.is_failed is not None and spec.is_failed(value):
            error = InvoiceProcessingError(
                f"Polled resource reached a failure state after {attempt} attempts",
                resource=value,
            )
            return Failed(value, error, attempt)

        if spec.is_complete(value):
            logger.debug("Poll completed after %d attempts", attempt)
            return Completed(value, attempt)

        elapsed = clock() - started
        if attempt >= spec.max_attempts or elapsed + delay > spec.timeout:
            logger.warning("Polling gave up after %d attempts (%.1fs)", attempt, elapsed)
            return TimedOut(attempt, elapsed, last_value)

        await sleep(delay)
        delay = next_delay(delay, spec)
