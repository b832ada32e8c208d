"""Async Python SDK for the NFE.io fiscal document API."""

from nfeio.api.async_resource import AsyncResourceProtocol, Enqueued, Immediate
from nfeio.api.http.retry import RetryPolicy
from nfeio.api.polling import Completed, Failed, PollingOptions, PollingSpec, TimedOut, poll
from nfeio.client import NfeClient
from nfeio.core.config import ClientConfig
from nfeio.core.constants import VERSION
from nfeio.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ConflictError,
    ConnectionError,
    InvoiceProcessingError,
    NfeError,
    NotFoundError,
    PollingTimeoutError,
    RateLimitError,
    ServerError,
    TimeoutError,
    ValidationError,
)

__version__ = VERSION

__all__ = [
    "AsyncResourceProtocol",
    "AuthenticationError",
    "ClientConfig",
    "Completed",
    "ConfigurationError",
    "ConflictError",
    "ConnectionError",
    "Enqueued",
    "Failed",
    "Immediate",
    "InvoiceProcessingError",
    "NfeClient",
    "NfeError",
    "NotFoundError",
    "PollingOptions",
    "PollingSpec",
    "PollingTimeoutError",
    "RateLimitError",
    "RetryPolicy",
    "ServerError",
    "TimedOut",
    "TimeoutError",
    "ValidationError",
    "poll",
]
