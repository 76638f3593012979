"""Webhook subscriptions and signature validation."""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any, List, Mapping, Union

from nfe.resources.base import Resource

logger = logging.getLogger(__name__)

__all__ = ["AVAILABLE_EVENTS", "WebhooksResource"]

AVAILABLE_EVENTS = (
    "invoice.issued",
    "invoice.cancelled",
    "invoice.failed",
    "invoice.processing",
    "company.created",
    "company.updated",
    "company.deleted",
)


def _as_bytes(value: Union[str, bytes]) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


class WebhooksResource(Resource):
    """Operations under ``/companies/{company_id}/webhooks``."""

    @staticmethod
    def _base_path(company_id: str) -> str:
        return f"/companies/{company_id}/webhooks"

    async def list(self, company_id: str) -> Any:
        response = await self.http.get(self._base_path(company_id))
        return response.data

    async def create(self, company_id: str, data: Mapping[str, Any]) -> Any:
        response = await self.http.post(self._base_path(company_id), data)
        return response.data

    async def retrieve(self, company_id: str, webhook_id: str) -> Any:
        response = await self.http.get(f"{self._base_path(company_id)}/{webhook_id}")
        return response.data

    async def update(
        self, company_id: str, webhook_id: str, data: Mapping[str, Any]
    ) -> Any:
        response = await self.http.put(
            f"{self._base_path(company_id)}/{webhook_id}", data
        )
        return response.data

    async def delete(self, company_id: str, webhook_id: str) -> Any:
        response = await self.http.delete(f"{self._base_path(company_id)}/{webhook_id}")
        return response.data

    async def test(self, company_id: str, webhook_id: str) -> Any:
        """Ask the API to deliver a test event to the webhook URL."""
        response = await self.http.post(
            f"{self._base_path(company_id)}/{webhook_id}/test", {}
        )
        return response.data

    @staticmethod
    def validate_signature(
        payload: Union[str, bytes],
        signature: Union[str, bytes],
        secret: Union[str, bytes],
    ) -> bool:
        """Check an ``X-NFE-Signature`` header against the raw payload.

        The signature is the hex HMAC-SHA256 of the payload keyed with the
        webhook secret. Comparison is constant-time.
        """
        try:
            expected = hmac.new(
                _as_bytes(secret), _as_bytes(payload), hashlib.sha256
            ).hexdigest()
            return hmac.compare_digest(_as_bytes(signature), expected.encode("ascii"))
        except (TypeError, ValueError) as exc:
            logger.warning("Could not validate webhook signature: %s", exc)
            return False

    @staticmethod
    def available_events() -> List[str]:
        return list(AVAILABLE_EVENTS)
