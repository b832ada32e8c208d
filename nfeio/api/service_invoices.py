"""Service invoices (NFS-e) resource."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable

from nfeio.api.async_resource import (
    AsyncResourceProtocol,
    Enqueued,
    Immediate,
    interpret_submission,
    status_of,
)
from nfeio.api.http.client import HttpClient
from nfeio.api.polling import PollingOptions
from nfeio.core.constants import (
    BATCH_MAX_CONCURRENT,
    FLOW_STATUS_COMPLETED,
    FLOW_STATUS_FAILED,
    FLOW_STATUS_TERMINAL,
    POLLING_BACKOFF_FACTOR,
    POLLING_INITIAL_DELAY_SEC,
    POLLING_MAX_ATTEMPTS,
    POLLING_MAX_DELAY_SEC,
    POLLING_TIMEOUT_SEC,
)
from nfeio.core.logger import logger

COLLECTION = "serviceinvoices"


@dataclass(frozen=True)
class InvoiceStatus:
    status: str
    invoice: dict[str, Any]
    is_complete: bool
    is_failed: bool

    @property
    def is_terminal(self) -> bool:
        return self.status in FLOW_STATUS_TERMINAL


class ServiceInvoicesResource:
    """Operacoes de NFS-e, incluindo emissao com espera pelo processamento."""

    def __init__(self, http: HttpClient, protocol: AsyncResourceProtocol | None = None) -> None:
        self.http = http
        self.protocol = protocol or AsyncResourceProtocol(
            COLLECTION, FLOW_STATUS_COMPLETED, FLOW_STATUS_FAILED
        )

    @staticmethod
    def _path(company_id: str, invoice_id: str | None = None, suffix: str | None = None) -> str:
        path = f"/companies/{company_id}/{COLLECTION}"
        if invoice_id:
            path = f"{path}/{invoice_id}"
        if suffix:
            path = f"{path}/{suffix}"
        return path

    async def create(self, company_id: str, data: dict[str, Any]) -> Immediate[dict[str, Any]] | Enqueued:
        """Emite uma NFS-e.

        Returns:
            ``Immediate`` with the invoice when the API answered synchronously,
            ``Enqueued`` with the invoice id when it answered 202.
        """
        response = await self.http.post(self._path(company_id), data)
        return interpret_submission(response, COLLECTION, self.http.transport.base_url)

    async def list(self, company_id: str, **options: Any) -> dict[str, Any]:
        response = await self.http.get(self._path(company_id), options)
        return response.body

    async def retrieve(self, company_id: str, invoice_id: str) -> dict[str, Any]:
        response = await self.http.get(self._path(company_id, invoice_id))
        return response.body

    async def cancel(self, company_id: str, invoice_id: str) -> dict[str, Any]:
        response = await self.http.delete(self._path(company_id, invoice_id))
        return response.body

    async def send_email(self, company_id: str, invoice_id: str) -> dict[str, Any]:
        """Reenvia a nota por email ao tomador."""
        response = await self.http.put(self._path(company_id, invoice_id, "sendemail"))
        return response.body

    async def get_status(self, company_id: str, invoice_id: str) -> InvoiceStatus:
        invoice = await self.retrieve(company_id, invoice_id)
        status = status_of(invoice, "flowStatus") or "unknown"
        return InvoiceStatus(
            status=status,
            invoice=invoice,
            is_complete=status in FLOW_STATUS_COMPLETED,
            is_failed=status in FLOW_STATUS_FAILED,
        )

    async def download_pdf(self, company_id: str, invoice_id: str | None = None) -> bytes:
        """Baixa o PDF da nota, ou o lote da empresa quando sem ``invoice_id``."""
        response = await self.http.get(self._path(company_id, invoice_id, "pdf"))
        return response.body

    async def download_xml(self, company_id: str, invoice_id: str | None = None) -> bytes:
        response = await self.http.get(self._path(company_id, invoice_id, "xml"))
        return response.body

    async def create_and_wait(
        self,
        company_id: str,
        data: dict[str, Any],
        *,
        timeout: float = POLLING_TIMEOUT_SEC,
        initial_delay: float = POLLING_INITIAL_DELAY_SEC,
        max_delay: float = POLLING_MAX_DELAY_SEC,
        backoff_factor: float = POLLING_BACKOFF_FACTOR,
        max_attempts: int = POLLING_MAX_ATTEMPTS,
        on_poll: Callable[[int, dict[str, Any]], None] | None = None,
    ) -> dict[str, Any]:
        """Emite a nota e aguarda o status final.

        Raises:
            InvoiceProcessingError: the API reported ``IssueFailed`` or
                ``CancelFailed``, or answered 202 without a usable Location.
            PollingTimeoutError: no terminal status within the budget. The
                invoice may still be issued later.
        """

        async def fetch_by_id(invoice_id: str) -> dict[str, Any]:
            return await self.retrieve(company_id, invoice_id)

        options = PollingOptions(
            initial_delay=initial_delay,
            max_delay=max_delay,
            backoff_factor=backoff_factor,
            timeout=timeout,
            max_attempts=max_attempts,
            on_poll=on_poll,
        )
        return await self.protocol.submit_and_wait(
            lambda: self.http.post(self._path(company_id), data),
            fetch_by_id,
            options,
            self.http.transport.base_url,
        )

    async def create_batch(
        self,
        company_id: str,
        invoices: list[dict[str, Any]],
        *,
        wait_for_completion: bool = False,
        max_concurrent: int = BATCH_MAX_CONCURRENT,
        **wait_options: Any,
    ) -> list[Any]:
        """Emite varias notas com concorrencia limitada.

        Results keep the order of ``invoices``; each entry is the final invoice
        when ``wait_for_completion`` is set, otherwise the ``create`` outcome.
        ``wait_options`` are forwarded to :meth:`create_and_wait`.

        After the first failure no further invoice is submitted. Submissions
        already in flight are awaited, then the first error is raised.
        """
        limit = max(1, max_concurrent)
        semaphore = asyncio.Semaphore(limit)
        aborted = asyncio.Event()

        async def submit_with_semaphore(data: dict[str, Any]) -> Any:
            async with semaphore:
                if aborted.is_set():
                    return None
                try:
                    if wait_for_completion:
                        return await self.create_and_wait(company_id, data, **wait_options)
                    return await self.create(company_id, data)
                except Exception:
                    aborted.set()
                    raise

        logger.info("Submitting %d service invoices (max %d at a time)", len(invoices), limit)
        results = await asyncio.gather(
            *(submit_with_semaphore(data) for data in invoices),
            return_exceptions=True,
        )

        errors = [result for result in results if isinstance(result, BaseException)]
        if errors:
            submitted = sum(
                1 for result in results if result is not None and not isinstance(result, BaseException)
            )
            logger.warning(
                "Batch stopped after a failure: %d of %d invoices submitted successfully",
                submitted,
                len(invoices),
            )
            raise errors[0]
        return list(results)
