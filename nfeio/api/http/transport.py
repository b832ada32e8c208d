"""Single-attempt async transport for the NFE.io API."""

from __future__ import annotations

import asyncio
import json
import platform
import sys
from dataclasses import dataclass, field
from typing import Any, Mapping

import aiohttp

from nfeio.core.constants import DEFAULT_BASE_URL, DEFAULT_HTTP_TIMEOUT_SEC, VERSION
from nfeio.core.exceptions import (
    NfeError,
    ServerError,
    error_from_network,
    error_from_response,
)
from nfeio.core.logger import logger

BINARY_CONTENT_TYPES = ("application/pdf", "application/xml")


@dataclass(frozen=True)
class Request:
    """One HTTP call, built once by the caller and reused across attempts."""

    method: str
    path: str
    body: Any = None
    params: Mapping[str, Any] | None = None
    headers: Mapping[str, str] | None = None


@dataclass(frozen=True)
class AsyncAccepted:
    """Sentinel body for ``202 Accepted`` answers carrying a ``Location``."""

    location: str
    code: int = 202
    status: str = "pending"


@dataclass(frozen=True)
class Response:
    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None


def build_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def build_params(params: Mapping[str, Any] | None) -> dict[str, str] | None:
    """Drop ``None`` values and render the rest as query strings."""
    if not params:
        return None
    rendered: dict[str, str] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            rendered[key] = "true" if value else "false"
        else:
            rendered[key] = str(value)
    return rendered or None


def user_agent() -> str:
    return f"nfeio-python/{VERSION} python/{platform.python_version()} ({sys.platform})"


class HttpTransport:
    """Cliente HTTP assincrono de tentativa unica.

    Executes exactly one request per :meth:`execute` call and converts every
    failure into the SDK error taxonomy. Retrying is the caller's concern.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SEC,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Garante uma sessao HTTP ativa."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def build_headers(self, body: Any, overrides: Mapping[str, str] | None = None) -> dict[str, str]:
        headers = {
            "Authorization": self.api_key,
            "Accept": "application/json",
            "User-Agent": user_agent(),
        }
        # Multipart bodies set their own boundary header.
        if body is not None and not isinstance(body, aiohttp.FormData):
            headers["Content-Type"] = "application/json"
        if overrides:
            headers.update(overrides)
        return headers

    @staticmethod
    def build_body(body: Any) -> Any:
        if body is None:
            return None
        if isinstance(body, aiohttp.FormData):
            return body
        return json.dumps(body)

    async def execute(self, request: Request) -> Response:
        """Send ``request`` once.

        Returns:
            The parsed response, or a 202 response whose body is
            :class:`AsyncAccepted`.

        Raises:
            NfeError: any classified failure; raw aiohttp exceptions never
                leave this method.
        """
        session = await self._get_session()
        url = build_url(self.base_url, request.path)
        logger.debug("%s %s", request.method.upper(), url)

        try:
            async with session.request(
                request.method.upper(),
                url,
                params=build_params(request.params),
                data=self.build_body(request.body),
                headers=self.build_headers(request.body, request.headers),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                return await self._process_response(response)
        except NfeError:
            raise
        except asyncio.TimeoutError as exc:
            raise error_from_network(exc, self.timeout) from exc
        except (aiohttp.ClientError, OSError) as exc:
            raise error_from_network(exc) from exc

    async def _process_response(self, response: aiohttp.ClientResponse) -> Response:
        if response.status == 202:
            location = response.headers.get("Location")
            if location:
                return Response(response.status, response.headers, AsyncAccepted(location))

        if not 200 <= response.status < 300:
            body = await self._read_error_body(response)
            error = error_from_response(response.status, body, response.headers)
            logger.debug("HTTP %s mapped to %s", response.status, type(error).__name__)
            raise error

        return Response(response.status, response.headers, await self._parse_body(response))

    @staticmethod
    async def _read_text(response: aiohttp.ClientResponse) -> str:
        try:
            return await response.text()
        except UnicodeDecodeError as exc:
            raise ServerError(
                "Undecodable response body",
                status_code=response.status,
                body=await response.read(),
            ) from exc

    async def _parse_body(self, response: aiohttp.ClientResponse) -> Any:
        content_type = response.headers.get("Content-Type", "")

        if "application/json" in content_type:
            text = await self._read_text(response)
            if not text.strip():
                return None
            try:
                return json.loads(text)
            except ValueError as exc:
                raise ServerError(
                    "Invalid JSON in API response", status_code=response.status, body=text
                ) from exc

        if any(kind in content_type for kind in BINARY_CONTENT_TYPES):
            return await response.read()

        text = await self._read_text(response)
        return text if text else None

    @staticmethod
    async def _read_error_body(response: aiohttp.ClientResponse) -> Any:
        content_type = response.headers.get("Content-Type", "")
        try:
            text = await response.text()
        except (aiohttp.ClientError, UnicodeDecodeError):
            return {"status": response.status, "reason": response.reason}

        if "application/json" in content_type and text.strip():
            try:
                return json.loads(text)
            except ValueError:
                return text
        return text

    async def close(self) -> None:
        """Fecha a sessao HTTP."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            logger.debug("NFE.io HTTP session closed")
