"""Companies and their digital certificates."""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Optional, Union

from nfe.lib.batch import submit_batch
from nfe.lib.errors import NfeError
from nfe.lib.http import MultipartForm
from nfe.resources.base import Resource

logger = logging.getLogger(__name__)

__all__ = ["CompaniesResource", "company_items"]

LOOKUP_PAGE_COUNT = 100


def company_items(listing: Any) -> List[Any]:
    """Extract the company records from a list response."""
    if isinstance(listing, list):
        return listing
    if isinstance(listing, Mapping):
        for key in ("companies", "data"):
            items = listing.get(key)
            if isinstance(items, list):
                return items
    return []


class CompaniesResource(Resource):
    """Operations under ``/companies``."""

    async def create(self, data: Mapping[str, Any]) -> Any:
        response = await self.http.post("/companies", data)
        return response.data

    async def list(self, params: Optional[Mapping[str, Any]] = None) -> Any:
        response = await self.http.get("/companies", params)
        return response.data

    async def retrieve(self, company_id: str) -> Any:
        response = await self.http.get(f"/companies/{company_id}")
        return response.data

    async def update(self, company_id: str, data: Mapping[str, Any]) -> Any:
        response = await self.http.put(f"/companies/{company_id}", data)
        return response.data

    async def remove(self, company_id: str) -> Any:
        response = await self.http.delete(f"/companies/{company_id}")
        return response.data

    async def upload_certificate(
        self,
        company_id: str,
        file: Union[bytes, Any],
        password: str,
        filename: str = "certificate.pfx",
    ) -> Any:
        """Upload a digital certificate (PFX/P12) as multipart/form-data.

        Args:
            company_id: Company to attach the certificate to
            file: Certificate content (bytes or a binary file object)
            password: Certificate password
            filename: Name reported for the uploaded file
        """
        form = MultipartForm(
            fields={"password": password},
            files={"certificate": (filename, file, "application/x-pkcs12")},
        )
        response = await self.http.post(f"/companies/{company_id}/certificate", form)
        return response.data

    async def get_certificate_status(self, company_id: str) -> Any:
        response = await self.http.get(f"/companies/{company_id}/certificate")
        return response.data

    async def find_by_tax_number(self, tax_number: Union[int, str]) -> Optional[Any]:
        """Find a company by CNPJ/CPF within the first page of companies."""
        listing = await self.list({"pageCount": LOOKUP_PAGE_COUNT})
        wanted = str(tax_number)
        for company in company_items(listing):
            if str(company.get("federalTaxNumber")) == wanted:
                return company
        return None

    async def get_companies_with_certificates(self) -> List[Any]:
        """Companies whose certificate is present and valid.

        Companies whose certificate status cannot be read are left out.
        """
        listing = await self.list({"pageCount": LOOKUP_PAGE_COUNT})
        found: List[Any] = []
        for company in company_items(listing):
            try:
                status = await self.get_certificate_status(company["id"])
            except NfeError as exc:
                logger.debug(
                    "Skipping company %s, certificate status unavailable: %s",
                    company.get("id"),
                    exc,
                )
                continue
            if status and status.get("hasCertificate") and status.get("isValid"):
                found.append(company)
        return found

    async def create_batch(
        self,
        companies: Iterable[Mapping[str, Any]],
        *,
        max_concurrent: int = 3,
        continue_on_error: bool = True,
    ) -> List[Any]:
        return await submit_batch(
            companies,
            self.create,
            max_concurrent=max_concurrent,
            continue_on_error=continue_on_error,
        )
