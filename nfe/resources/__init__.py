"""NFE.io API resources."""

from nfe.resources.companies import CompaniesResource
from nfe.resources.service_invoices import ServiceInvoicesResource
from nfe.resources.webhooks import AVAILABLE_EVENTS, WebhooksResource

__all__ = [
    "AVAILABLE_EVENTS",
    "CompaniesResource",
    "ServiceInvoicesResource",
    "WebhooksResource",
]
