"""Async client for the NFE.io electronic invoice API.

Usage:
    from nfe import NfeClient

    client = NfeClient(api_key="...")
    invoice = await client.service_invoices.create_and_wait(company_id, data)
"""

from nfe._version import __version__
from nfe.client import NfeClient
from nfe.lib.errors import ErrorKind, NfeError
from nfe.lib.http import AsyncOperation
from nfe.lib.polling import PollOptions
from nfe.lib.resilience import RetryPolicy

__all__ = [
    "AsyncOperation",
    "ErrorKind",
    "NfeClient",
    "NfeError",
    "PollOptions",
    "RetryPolicy",
    "__version__",
]
