"""Custom exceptions for the NFE.io SDK.

Every failure surfaced by the SDK is one of the classes below. The transport
layer maps HTTP statuses and network exceptions onto them through
:func:`error_from_response` and :func:`error_from_network`; nothing in this
module performs I/O.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Mapping


class NfeError(Exception):
    """Base exception for SDK errors."""

    default_message = "NFE.io API error"

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        body: Any = None,
    ) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.status_code = status_code
        self.body = body

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable view of the error."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "status_code": self.status_code,
            "body": self.body,
        }


class ValidationError(NfeError):
    """Invalid request data (HTTP 400)."""

    default_message = "Invalid request data"


class AuthenticationError(NfeError):
    """Invalid API key or authentication failed (HTTP 401)."""

    default_message = "Invalid API key or authentication failed"


class NotFoundError(NfeError):
    """Resource not found (HTTP 404)."""

    default_message = "Resource not found"


class ConflictError(NfeError):
    """Resource conflict (HTTP 409)."""

    default_message = "Resource conflict"


class RateLimitError(NfeError):
    """Rate limit exceeded (HTTP 429)."""

    default_message = "Rate limit exceeded"

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = 429,
        body: Any = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, body=body)
        self.retry_after = retry_after

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["retry_after"] = self.retry_after
        return data


class ServerError(NfeError):
    """Server side failure (HTTP 5xx or any unexpected status)."""

    default_message = "Internal server error"


class ConnectionError(NfeError):
    """Network level failure: DNS, refused connection, TLS."""

    default_message = "Connection error"


class TimeoutError(NfeError):
    """Request aborted after exceeding its deadline."""

    default_message = "Request timeout"


class ConfigurationError(NfeError):
    """SDK configuration error."""

    default_message = "SDK configuration error"


class InvoiceProcessingError(NfeError):
    """The remote side reported a failed invoice, or answered off-contract."""

    default_message = "Invoice processing failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        flow_status: str | None = None,
        resource: Any = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, body=resource)
        self.flow_status = flow_status
        self.resource = resource

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["flow_status"] = self.flow_status
        return data


class PollingTimeoutError(NfeError):
    """Polling gave up before a terminal state.

    The remote operation may still complete later; this is not a failure.
    """

    default_message = "Polling timeout - operation still in progress"

    def __init__(
        self,
        message: str | None = None,
        *,
        attempts: int = 0,
        elapsed: float = 0.0,
        last_value: Any = None,
    ) -> None:
        super().__init__(message, body=last_value)
        self.attempts = attempts
        self.elapsed = elapsed
        self.last_value = last_value

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["attempts"] = self.attempts
        data["elapsed"] = self.elapsed
        return data


PERMANENT_ERRORS = (ValidationError, AuthenticationError, NotFoundError, ConflictError)
TRANSIENT_ERRORS = (RateLimitError, ServerError, ConnectionError, TimeoutError)


def extract_error_message(body: Any, status: int) -> str:
    """Pick the most specific message from an error payload.

    Order: ``message``, ``error``, ``detail``, ``details``; a plain text body
    is used as is, anything else falls back to ``HTTP <status> error``.
    """
    if isinstance(body, Mapping):
        for key in ("message", "error", "detail", "details"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value

    if isinstance(body, str) and body.strip():
        return body.strip()

    return f"HTTP {status} error"


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """Convert a ``Retry-After`` header (seconds or HTTP-date) to seconds."""
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None

    try:
        return max(0.0, float(value))
    except ValueError:
        pass

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (when - now).total_seconds())


def error_from_response(
    status: int,
    body: Any = None,
    headers: Mapping[str, str] | None = None,
    message: str | None = None,
) -> NfeError:
    """Map a non-2xx HTTP response onto the error taxonomy."""
    message = message or extract_error_message(body, status)

    if status == 400:
        return ValidationError(message, status_code=status, body=body)
    if status == 401:
        return AuthenticationError(message, status_code=status, body=body)
    if status == 404:
        return NotFoundError(message, status_code=status, body=body)
    if status == 409:
        return ConflictError(message, status_code=status, body=body)
    if status == 429:
        retry_after = parse_retry_after(headers.get("Retry-After")) if headers else None
        return RateLimitError(message, status_code=status, body=body, retry_after=retry_after)
    # 5xx and any other unexpected status keep the raw code.
    return ServerError(message, status_code=status, body=body)


def error_from_network(exc: BaseException, timeout: float | None = None) -> NfeError:
    """Map a transport exception onto Timeout or Connection."""
    if isinstance(exc, NfeError):
        return exc

    if isinstance(exc, asyncio.TimeoutError):
        if timeout is not None:
            return TimeoutError(f"Request timeout after {timeout:g}s")
        return TimeoutError()

    detail = str(exc) or type(exc).__name__
    return ConnectionError(f"Network connection failed: {detail}")


def missing_api_key_error() -> ConfigurationError:
    return ConfigurationError(
        "API key is required. Pass it in ClientConfig or set the NFE_API_KEY environment variable."
    )
