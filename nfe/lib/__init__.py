"""Core building blocks of the NFE.io client.

Transport, retry, polling and batch primitives shared by every resource.
"""

from nfe.lib.batch import BatchFailure, submit_batch
from nfe.lib.config import ClientConfig
from nfe.lib.errors import (
    ErrorKind,
    NfeError,
    from_http_response,
    from_network_error,
    resolve_error_message,
)
from nfe.lib.http import (
    AsyncOperation,
    HttpClient,
    HttpResponse,
    MultipartForm,
    RequestDescriptor,
)
from nfe.lib.logging import JSONFormatter, setup_logging
from nfe.lib.polling import (
    DEFAULT_COMPLETION,
    SERVICE_INVOICE_COMPLETION,
    CompletionPolicy,
    PollOptions,
    PollState,
    poll_until_complete,
    resolve_location_path,
)
from nfe.lib.resilience import RetryPolicy, is_retryable, retry_async

__all__ = [
    "AsyncOperation",
    "BatchFailure",
    "ClientConfig",
    "CompletionPolicy",
    "DEFAULT_COMPLETION",
    "ErrorKind",
    "HttpClient",
    "HttpResponse",
    "JSONFormatter",
    "MultipartForm",
    "NfeError",
    "PollOptions",
    "PollState",
    "RequestDescriptor",
    "RetryPolicy",
    "SERVICE_INVOICE_COMPLETION",
    "from_http_response",
    "from_network_error",
    "is_retryable",
    "poll_until_complete",
    "resolve_error_message",
    "resolve_location_path",
    "retry_async",
    "setup_logging",
    "submit_batch",
]
