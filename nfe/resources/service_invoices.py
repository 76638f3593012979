"""Service invoices (NFS-e).

Invoice creation is asynchronous on the API side: ``create`` usually returns
an :class:`AsyncOperation` pointing at the invoice being processed, and
``create_and_wait`` polls it until the invoice is issued or fails.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from nfe.lib.auth import PDF_CONTENT_TYPE, XML_CONTENT_TYPE
from nfe.lib.batch import submit_batch
from nfe.lib.errors import ErrorKind, NfeError
from nfe.lib.http import AsyncOperation
from nfe.lib.polling import SERVICE_INVOICE_COMPLETION, PollOptions
from nfe.resources.base import Resource

logger = logging.getLogger(__name__)

__all__ = ["ServiceInvoicesResource"]

COMPLETE_FLOW_STATUSES = ("Issued",)
FAILED_FLOW_STATUSES = ("CancelFailed", "IssueFailed")


class ServiceInvoicesResource(Resource):
    """Operations under ``/companies/{company_id}/serviceinvoices``."""

    @staticmethod
    def _base_path(company_id: str) -> str:
        return f"/companies/{company_id}/serviceinvoices"

    async def create(self, company_id: str, data: Mapping[str, Any]) -> Any:
        """Submit an invoice; returns the invoice or an AsyncOperation."""
        response = await self.http.post(self._base_path(company_id), data)
        return response.data

    async def list(
        self, company_id: str, params: Optional[Mapping[str, Any]] = None
    ) -> Any:
        response = await self.http.get(self._base_path(company_id), params)
        return response.data

    async def retrieve(self, company_id: str, invoice_id: str) -> Any:
        response = await self.http.get(f"{self._base_path(company_id)}/{invoice_id}")
        return response.data

    async def cancel(self, company_id: str, invoice_id: str) -> Any:
        response = await self.http.delete(f"{self._base_path(company_id)}/{invoice_id}")
        return response.data

    async def send_email(self, company_id: str, invoice_id: str) -> Any:
        response = await self.http.put(
            f"{self._base_path(company_id)}/{invoice_id}/sendemail"
        )
        return response.data

    async def _download(
        self, company_id: str, invoice_id: Optional[str], kind: str, accept: str
    ) -> Any:
        base = self._base_path(company_id)
        path = f"{base}/{invoice_id}/{kind}" if invoice_id else f"{base}/{kind}"
        response = await self.http.get(path, accept=accept)
        return response.data

    async def download_pdf(self, company_id: str, invoice_id: Optional[str] = None) -> Any:
        """Download one invoice PDF, or every invoice of the company when
        ``invoice_id`` is omitted."""
        return await self._download(company_id, invoice_id, "pdf", PDF_CONTENT_TYPE)

    async def download_xml(self, company_id: str, invoice_id: Optional[str] = None) -> Any:
        return await self._download(company_id, invoice_id, "xml", XML_CONTENT_TYPE)

    async def create_and_wait(
        self,
        company_id: str,
        data: Mapping[str, Any],
        options: Optional[PollOptions] = None,
    ) -> Any:
        """Create an invoice and wait until it is issued.

        Raises:
            NfeError: INVOICE_PROCESSING if the invoice fails or the creation
                response is neither an invoice nor an async operation;
                POLLING_TIMEOUT if it does not settle within ``options``
        """
        result = await self.create(company_id, data)

        if isinstance(result, Mapping) and result.get("id"):
            return result

        if not isinstance(result, AsyncOperation):
            raise NfeError(
                ErrorKind.INVOICE_PROCESSING,
                "Unexpected response from invoice creation",
                details=result,
            )

        logger.debug("Invoice accepted for processing at %s", result.location)
        return await self._poll(result.location, SERVICE_INVOICE_COMPLETION, options)

    async def get_status(self, company_id: str, invoice_id: str) -> Dict[str, Any]:
        invoice = await self.retrieve(company_id, invoice_id)
        status = "unknown"
        if isinstance(invoice, Mapping) and invoice.get("flowStatus"):
            status = invoice["flowStatus"]
        return {
            "status": status,
            "invoice": invoice,
            "is_complete": status in COMPLETE_FLOW_STATUSES,
            "is_failed": status in FAILED_FLOW_STATUSES,
        }

    async def create_batch(
        self,
        company_id: str,
        invoices: Iterable[Mapping[str, Any]],
        *,
        wait_for_completion: bool = False,
        max_concurrent: int = 5,
        continue_on_error: bool = False,
        options: Optional[PollOptions] = None,
    ) -> List[Any]:
        """Create many invoices, ``max_concurrent`` at a time."""

        async def submit(data: Mapping[str, Any]) -> Any:
            if wait_for_completion:
                return await self.create_and_wait(company_id, data, options)
            return await self.create(company_id, data)

        return await submit_batch(
            invoices,
            submit,
            max_concurrent=max_concurrent,
            continue_on_error=continue_on_error,
        )
