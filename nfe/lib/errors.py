"""Error taxonomy for the NFE.io client.

Every failure the SDK surfaces is an :class:`NfeError` carrying an explicit
:class:`ErrorKind`. Callers branch on ``error.kind`` rather than on the
exception class:

    try:
        await client.service_invoices.create(company_id, data)
    except NfeError as exc:
        if exc.kind is ErrorKind.VALIDATION:
            ...

The factory functions here are pure: they map an HTTP status and body, or a
network-layer exception, to an error instance without doing any I/O.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Dict, Optional

import httpx

__all__ = [
    "ErrorKind",
    "NfeError",
    "from_http_response",
    "from_network_error",
    "resolve_error_message",
    "missing_api_key",
    "invalid_configuration",
]


class ErrorKind(Enum):
    """Closed set of error categories."""

    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    RATE_LIMIT = "rate_limit"
    SERVER = "server"
    CONNECTION = "connection"
    TIMEOUT = "timeout"
    CONFIGURATION = "configuration"
    POLLING_TIMEOUT = "polling_timeout"
    INVOICE_PROCESSING = "invoice_processing"
    GENERIC = "generic"


class NfeError(Exception):
    """Single error type raised by the SDK.

    Attributes:
        kind: Stable discriminant callers switch on
        message: Human-readable description
        status: Originating HTTP status code, if any
        details: Raw response body or diagnostic payload
        cause: Underlying exception, if any
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        status: Optional[int] = None,
        details: Any = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.kind = kind
        self.message = message
        self.status = status
        self.details = details
        self.cause = cause
        super().__init__(message)

    def __repr__(self) -> str:
        return (
            f"NfeError(kind={self.kind.value!r}, message={self.message!r}, "
            f"status={self.status!r})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "status": self.status,
            "details": self.details,
            "cause": repr(self.cause) if self.cause is not None else None,
        }


_STATUS_KINDS: Dict[int, ErrorKind] = {
    400: ErrorKind.VALIDATION,
    401: ErrorKind.AUTHENTICATION,
    404: ErrorKind.NOT_FOUND,
    409: ErrorKind.CONFLICT,
    429: ErrorKind.RATE_LIMIT,
    500: ErrorKind.SERVER,
    502: ErrorKind.SERVER,
    503: ErrorKind.SERVER,
    504: ErrorKind.SERVER,
}

_MESSAGE_FIELDS = ("message", "error", "detail", "details")


def resolve_error_message(body: Any, status: int) -> str:
    """Pick the most useful message out of an error body.

    Prefers a string ``message``, ``error``, ``detail`` or ``details`` field,
    then a body that is itself a string, then ``"HTTP {status} error"``.
    """
    if isinstance(body, dict):
        for field in _MESSAGE_FIELDS:
            value = body.get(field)
            if isinstance(value, str):
                return value

    if isinstance(body, str):
        return body

    return f"HTTP {status} error"


def _kind_for_status(status: int) -> ErrorKind:
    kind = _STATUS_KINDS.get(status)
    if kind is not None:
        return kind
    if 400 <= status < 500:
        return ErrorKind.VALIDATION
    if status >= 500:
        return ErrorKind.SERVER
    return ErrorKind.GENERIC


def from_http_response(
    status: int,
    body: Any = None,
    message: Optional[str] = None,
) -> NfeError:
    """Build an error for a non-success HTTP response.

    Args:
        status: HTTP status code
        body: Decoded response body, kept verbatim as ``details``
        message: Explicit message; resolved from ``body`` when omitted

    Returns:
        NfeError whose kind follows the status mapping
    """
    return NfeError(
        _kind_for_status(status),
        message or resolve_error_message(body, status),
        status=status,
        details=body,
    )


def from_network_error(exc: BaseException) -> NfeError:
    """Classify a transport-level failure (no HTTP response received)."""
    text = str(exc).lower()

    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return NfeError(ErrorKind.TIMEOUT, "Request timeout", details=exc, cause=exc)

    if isinstance(exc, httpx.TransportError) or "fetch" in text:
        return NfeError(
            ErrorKind.CONNECTION, "Network connection failed", details=exc, cause=exc
        )

    return NfeError(ErrorKind.CONNECTION, "Connection error", details=exc, cause=exc)


def missing_api_key() -> NfeError:
    return NfeError(
        ErrorKind.CONFIGURATION,
        "API key is required. Pass api_key or set the NFE_API_KEY environment variable.",
        details={"field": "api_key"},
    )


def invalid_configuration(message: str, **details: Any) -> NfeError:
    return NfeError(ErrorKind.CONFIGURATION, message, details=details or None)
