"""Submit-then-poll protocol for long running NFE.io operations.

Issuing an invoice answers either with the created resource (201) or with
``202 Accepted`` plus a ``Location`` header. In the second case the resource id
is taken from the Location and the resource is fetched until it reaches a
terminal status.
"""

from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar, Union
from urllib.parse import urlsplit

from nfeio.api.http.transport import AsyncAccepted, Response
from nfeio.api.polling import Completed, Failed, PollingOptions, PollingSpec, TimedOut, poll
from nfeio.core.exceptions import InvoiceProcessingError, PollingTimeoutError
from nfeio.core.logger import logger

T = TypeVar("T")


@dataclass(frozen=True)
class Immediate(Generic[T]):
    result: T


@dataclass(frozen=True)
class Enqueued:
    poll_target: str
    resource_id: str


SubmissionOutcome = Union[Immediate[T], Enqueued]


def location_to_path(location: str, base_url: str | None = None) -> str:
    """Turn a Location header (absolute URL or path) into a request path.

    When the path starts with the base URL's own path (``/v1``), that prefix is
    removed so the result can be joined to the base URL again.
    """
    parts = urlsplit(location)
    path = parts.path if parts.scheme or parts.netloc else location.split("?", 1)[0]
    if not path.startswith("/"):
        path = f"/{path}"

    if base_url:
        prefix = urlsplit(base_url).path.rstrip("/")
        if prefix and (path == prefix or path.startswith(f"{prefix}/")):
            path = path[len(prefix):] or "/"

    if parts.query:
        path = f"{path}?{parts.query}"
    return path


def extract_resource_id(location: str, collection: str) -> str:
    """Return the path segment following ``/<collection>/`` in ``location``."""
    match = re.search(rf"/{re.escape(collection)}/([^/?#]+)", location)
    if not match:
        raise InvoiceProcessingError(
            f"Could not extract a {collection} id from Location: {location}",
            resource={"location": location},
        )
    return match.group(1)


def interpret_submission(
    response: Response,
    collection: str,
    base_url: str | None = None,
) -> SubmissionOutcome[Any]:
    """Classify a submit response as immediate or enqueued."""
    if response.status != 202:
        return Immediate(response.body)

    if not isinstance(response.body, AsyncAccepted):
        raise InvoiceProcessingError(
            "API answered 202 Accepted without a Location header",
            resource=response.body,
            status_code=202,
        )

    location = response.body.location
    return Enqueued(
        poll_target=location_to_path(location, base_url),
        resource_id=extract_resource_id(location, collection),
    )


def status_of(resource: Any, field: str) -> str | None:
    if isinstance(resource, dict):
        value = resource.get(field)
        return str(value) if value is not None else None
    return None


class AsyncResourceProtocol:
    """Drives one submission to a terminal state.

    Args:
        collection: collection name in resource paths (``serviceinvoices``).
        completed_statuses: statuses that end the wait successfully.
        failed_statuses: statuses the server uses to report failure.
        status_field: key of the status in the resource payload.
    """

    def __init__(
        self,
        collection: str,
        completed_statuses: frozenset[str],
        failed_statuses: frozenset[str],
        status_field: str = "flowStatus",
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.collection = collection
        self.completed_statuses = completed_statuses
        self.failed_statuses = failed_statuses
        self.status_field = status_field
        self._sleep = sleep
        self._clock = clock

    def is_complete(self, resource: Any) -> bool:
        return status_of(resource, self.status_field) in self.completed_statuses

    def is_failed(self, resource: Any) -> bool:
        return status_of(resource, self.status_field) in self.failed_statuses

    async def wait(
        self,
        fetch: Callable[[], Awaitable[T]],
        options: PollingOptions | None = None,
    ) -> T:
        """Poll ``fetch`` until terminal, raising on failure or timeout."""
        spec = PollingSpec.from_options(fetch, self.is_complete, self.is_failed, options)

        outcome = await poll(spec, sleep=self._sleep, clock=self._clock)

        if isinstance(outcome, Completed):
            return outcome.value

        if isinstance(outcome, Failed):
            status = status_of(outcome.value, self.status_field)
            detail = status_of(outcome.value, "message") or status_of(outcome.value, "flowMessage")
            message = f"Processing failed with status {status}"
            if detail:
                message = f"{message}: {detail}"
            raise InvoiceProcessingError(message, flow_status=status, resource=outcome.value)

        if not isinstance(outcome, TimedOut):
            raise TypeError(f"Unexpected poll outcome: {outcome!r}")
        raise PollingTimeoutError(
            f"Polling timeout after {outcome.attempts} attempts ({outcome.elapsed:.1f}s). "
            "Resource may still be processing.",
            attempts=outcome.attempts,
            elapsed=outcome.elapsed,
            last_value=outcome.last_value,
        )

    async def submit_and_wait(
        self,
        submit: Callable[[], Awaitable[Response]],
        fetch_by_id: Callable[[str], Awaitable[T]],
        options: PollingOptions | None = None,
        base_url: str | None = None,
    ) -> T:
        """Submit, then poll by id when the API enqueued the request.

        An immediate answer is returned without further HTTP calls.
        """
        outcome = interpret_submission(await submit(), self.collection, base_url)

        if isinstance(outcome, Immediate):
            return outcome.result

        logger.info("%s %s enqueued, polling %s", self.collection, outcome.resource_id, outcome.poll_target)
        return await self.wait(lambda: fetch_by_id(outcome.resource_id), options)
