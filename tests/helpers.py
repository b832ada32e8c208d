"""Shared helpers for the async HTTP tests."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable

from aiohttp import web
from aiohttp.test_utils import TestServer

from nfeio.api.async_resource import AsyncResourceProtocol
from nfeio.api.http.client import HttpClient
from nfeio.api.http.retry import RetryPolicy
from nfeio.api.http.transport import HttpTransport
from nfeio.api.service_invoices import COLLECTION, ServiceInvoicesResource
from nfeio.core.constants import FLOW_STATUS_COMPLETED, FLOW_STATUS_FAILED

API_PREFIX = "/v1"


class RecordingSleep:
    """Async sleep replacement that only records the requested delays."""

    def __init__(self, clock: "FakeClock | None" = None) -> None:
        self.delays: list[float] = []
        self.clock = clock

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.clock is not None:
            self.clock.now += delay


class FakeClock:
    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


@asynccontextmanager
async def serve_api(routes: Iterable[web.RouteDef]) -> AsyncIterator[str]:
    """Run ``routes`` on a local aiohttp server and yield its ``/v1`` base URL."""
    app = web.Application()
    app.add_routes(list(routes))
    server = TestServer(app)
    await server.start_server()
    try:
        yield str(server.make_url(API_PREFIX))
    finally:
        await server.close()


def make_http(
    base_url: str,
    *,
    max_retries: int = 3,
    timeout: float = 5.0,
    sleep: RecordingSleep | None = None,
) -> HttpClient:
    transport = HttpTransport("test-key", base_url, timeout)
    policy = RetryPolicy(max_retries=max_retries, base_delay=0.01, max_delay=0.1)
    return HttpClient(transport, policy, sleep=sleep or RecordingSleep())


def make_invoices(http: HttpClient, sleep: RecordingSleep | None = None) -> ServiceInvoicesResource:
    protocol = AsyncResourceProtocol(
        COLLECTION,
        FLOW_STATUS_COMPLETED,
        FLOW_STATUS_FAILED,
        sleep=sleep or RecordingSleep(),
    )
    return ServiceInvoicesResource(http, protocol)
