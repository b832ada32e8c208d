"""NFE.io client facade."""

from __future__ import annotations

import platform
from typing import Any, Callable

from nfeio.api.async_resource import AsyncResourceProtocol, location_to_path, status_of
from nfeio.api.http.client import HttpClient
from nfeio.api.http.transport import HttpTransport
from nfeio.api.polling import PollingOptions
from nfeio.api.service_invoices import ServiceInvoicesResource
from nfeio.core.config import ClientConfig
from nfeio.core.constants import (
    GENERIC_STATUS_COMPLETED,
    GENERIC_STATUS_FAILED,
    POLLING_INITIAL_DELAY_SEC,
    POLLING_MAX_ATTEMPTS,
    POLLING_TIMEOUT_SEC,
    VERSION,
)
from nfeio.core.exceptions import NfeError, missing_api_key_error
from nfeio.core.logger import logger


class LocationPollingProtocol(AsyncResourceProtocol):
    """Completion rules for resources polled by Location, without ``flowStatus``."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__("", GENERIC_STATUS_COMPLETED, GENERIC_STATUS_FAILED, "status", **kwargs)

    def is_complete(self, resource: Any) -> bool:
        status = (status_of(resource, "status") or "").lower()
        if status in self.completed_statuses:
            return True
        # Issued invoices may come back without an explicit status.
        return bool(
            isinstance(resource, dict) and not status and resource.get("id") and resource.get("number")
        )

    def is_failed(self, resource: Any) -> bool:
        status = (status_of(resource, "status") or "").lower()
        return status in self.failed_statuses or bool(
            isinstance(resource, dict) and resource.get("error")
        )


class NfeClient:
    """Cliente principal do SDK.

    Example::

        async with NfeClient(ClientConfig.from_env()) as nfe:
            invoice = await nfe.service_invoices.create_and_wait(company_id, data)
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        http_factory: Callable[[ClientConfig], HttpClient] | None = None,
    ) -> None:
        self._config = config or ClientConfig.from_env()
        self._http_factory = http_factory or self._build_http
        self._http: HttpClient | None = None
        self._service_invoices: ServiceInvoicesResource | None = None

    @staticmethod
    def _build_http(config: ClientConfig) -> HttpClient:
        transport = HttpTransport(config.api_key or "", config.base_url, config.timeout)
        return HttpClient(transport, config.retry_policy)

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def http(self) -> HttpClient:
        if self._http is None:
            if not self._config.api_key:
                raise missing_api_key_error()
            self._http = self._http_factory(self._config)
        return self._http

    @property
    def service_invoices(self) -> ServiceInvoicesResource:
        if self._service_invoices is None:
            self._service_invoices = ServiceInvoicesResource(self.http)
        return self._service_invoices

    async def update_config(self, **changes: Any) -> ClientConfig:
        """Replace the configuration; resources are rebuilt on next access."""
        self._config = self._config.with_overrides(**changes)
        await self.close()
        self._http = None
        self._service_invoices = None
        return self._config

    async def poll_until_complete(
        self,
        location: str,
        *,
        max_attempts: int = POLLING_MAX_ATTEMPTS,
        interval: float = POLLING_INITIAL_DELAY_SEC,
        timeout: float = POLLING_TIMEOUT_SEC,
        on_poll: Callable[[int, Any], None] | None = None,
    ) -> Any:
        """Poll a Location URL until the resource reports completion.

        Raises:
            InvoiceProcessingError: the resource reported ``failed``/``error``.
            PollingTimeoutError: still processing after ``max_attempts``.
        """
        path = location_to_path(location, self._config.base_url)
        http = self.http

        async def fetch() -> Any:
            return (await http.get(path)).body

        options = PollingOptions(
            initial_delay=interval,
            max_delay=interval,
            backoff_factor=1.0,
            timeout=timeout,
            max_attempts=max_attempts,
            on_poll=on_poll,
        )
        return await LocationPollingProtocol().wait(fetch, options)

    async def health_check(self) -> dict[str, Any]:
        """Check connectivity and credentials with a one-item company listing."""
        try:
            await self.http.get("/companies", {"pageCount": 1})
        except NfeError as exc:
            logger.warning("Health check failed: %s", exc.to_dict())
            return {
                "status": "error",
                "details": {
                    **exc.to_dict(),
                    "config": {
                        "base_url": self._config.base_url,
                        "environment": self._config.environment,
                        "has_api_key": bool(self._config.api_key),
                    },
                },
            }
        return {"status": "ok"}

    def get_client_info(self) -> dict[str, Any]:
        return {
            "version": VERSION,
            "python_version": platform.python_version(),
            "environment": self._config.environment,
            "base_url": self._config.base_url,
            "has_api_key": bool(self._config.api_key),
        }

    async def close(self) -> None:
        if self._http is not None:
            await self._http.close()

    async def __aenter__(self) -> "NfeClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
