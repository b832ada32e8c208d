"""Retrying HTTP client used by the resource classes."""

from __future__ import annotations

import asyncio
import random
from typing import Any, Callable, Mapping

from nfeio.api.http.retry import RetryPolicy, Sleep, with_retry
from nfeio.api.http.transport import HttpTransport, Request, Response


class HttpClient:
    """Wrapper de retries sobre o transporte.

    Every call goes through :func:`with_retry`, so transient failures are
    absorbed here and only classified errors reach the resources.
    """

    def __init__(
        self,
        transport: HttpTransport,
        retry_policy: RetryPolicy | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.transport = transport
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng

    async def request(self, request: Request) -> Response:
        return await with_retry(
            lambda: self.transport.execute(request),
            self.retry_policy,
            sleep=self._sleep,
            rng=self._rng,
        )

    async def get(self, path: str, params: Mapping[str, Any] | None = None) -> Response:
        return await self.request(Request("GET", path, params=params))

    async def post(self, path: str, body: Any = None) -> Response:
        return await self.request(Request("POST", path, body=body))

    async def put(self, path: str, body: Any = None) -> Response:
        return await self.request(Request("PUT", path, body=body))

    async def delete(self, path: str) -> Response:
        return await self.request(Request("DELETE", path))

    async def close(self) -> None:
        await self.transport.close()
