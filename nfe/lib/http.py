"""Async HTTP transport for the NFE.io API using httpx.

One :meth:`HttpClient.execute` call is exactly one HTTP exchange: it builds
the URL and headers, encodes the body, enforces the hard timeout, decodes the
response by content type and raises an :class:`NfeError` for anything that is
not a success. :meth:`HttpClient.request` wraps that exchange in the retry
orchestrator.

HTTP 202 with a ``Location`` header is the API's way of saying "accepted,
come back later"; it is returned as an :class:`AsyncOperation` for the poller
instead of being decoded.

Example:
    client = HttpClient(ClientConfig(api_key="abc123"))
    response = await client.get("/companies", params={"pageCount": 10})
    companies = response.data["companies"]
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple
from urllib.parse import urlsplit

import httpx

from nfe.lib.auth import (
    PDF_CONTENT_TYPE,
    XML_CONTENT_TYPE,
    build_basic_auth,
    build_request_headers,
)
from nfe.lib.config import ClientConfig
from nfe.lib.errors import ErrorKind, NfeError, from_http_response, from_network_error
from nfe.lib.resilience import retry_async

logger = logging.getLogger(__name__)

__all__ = [
    "AsyncOperation",
    "HttpClient",
    "HttpResponse",
    "MultipartForm",
    "RequestDescriptor",
]

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class MultipartForm:
    """multipart/form-data payload.

    ``files`` maps a field name to ``(filename, content)`` or
    ``(filename, content, content_type)``. The boundary and Content-Type
    header are generated by httpx.
    """

    fields: Mapping[str, Any] = field(default_factory=dict)
    files: Mapping[str, Tuple[Any, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class RequestDescriptor:
    """Immutable description of one API call."""

    method: str
    path: str
    params: Optional[Mapping[str, Any]] = None
    body: Any = None


@dataclass(frozen=True)
class AsyncOperation:
    """Marker for work the API accepted but has not finished (HTTP 202)."""

    location: str
    code: int = 202
    status: str = "pending"


@dataclass(frozen=True)
class HttpResponse:
    """Decoded response.

    ``data`` is a JSON value, ``bytes`` for PDF/XML, ``str`` for other content
    types, or an :class:`AsyncOperation` for HTTP 202.
    """

    status: int
    data: Any
    headers: httpx.Headers = field(default_factory=httpx.Headers)


def encode_params(params: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """Render query parameters, dropping ``None`` values."""
    encoded: Dict[str, str] = {}
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            encoded[key] = "true" if value else "false"
        else:
            encoded[key] = str(value)
    return encoded


def _content_type(response: httpx.Response) -> str:
    return response.headers.get("content-type", "").lower()


def decode_body(response: httpx.Response) -> Any:
    """Decode a success body according to its content type."""
    content_type = _content_type(response)

    if "application/json" in content_type:
        if not response.content.strip():
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise NfeError(
                ErrorKind.GENERIC,
                "Invalid JSON in response body",
                status=response.status_code,
                details=response.text,
                cause=exc,
            ) from exc

    if PDF_CONTENT_TYPE in content_type or XML_CONTENT_TYPE in content_type:
        return response.content

    return response.text


def decode_error_body(response: httpx.Response) -> Any:
    """Decode an error body; falls back to ``{status, statusText}``."""
    try:
        if "json" in _content_type(response):
            return response.json()
        return response.text
    except ValueError:
        return {"status": response.status_code, "statusText": response.reason_phrase}


class HttpClient:
    """Transport client bound to one configuration snapshot.

    Each request opens its own ``httpx.AsyncClient``; ``transport`` may be
    injected (e.g. ``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.config = config.validate()
        self._auth = build_basic_auth(config.api_key)
        self._transport = transport
        self._sleep = sleep

    @property
    def timeout_seconds(self) -> float:
        return self.config.timeout_ms / 1000.0

    def build_url(self, path: str) -> str:
        """Join ``path`` onto the base URL.

        Absolute URLs are used as-is. Paths already carrying the base URL's
        own prefix (``/v1/companies/...`` against ``https://api.nfe.io/v1``)
        do not get the prefix twice.
        """
        if path.startswith(("http://", "https://")):
            return path

        base = self.config.base_url.rstrip("/")
        base_path = urlsplit(base).path.rstrip("/")
        relative = "/" + path.lstrip("/")

        if base_path and (
            relative == base_path
            or relative.startswith(base_path + "/")
            or relative.startswith(base_path + "?")
        ):
            relative = relative[len(base_path) :]

        return base + relative

    async def execute(
        self,
        request: RequestDescriptor,
        accept: Optional[str] = None,
    ) -> HttpResponse:
        """Perform exactly one HTTP exchange.

        Raises:
            NfeError: TIMEOUT/CONNECTION for transport failures, a status-mapped
                kind for non-2xx responses, GENERIC for a 202 without Location
        """
        url = self.build_url(request.path)
        body = request.body
        kwargs: Dict[str, Any] = {}
        params = encode_params(request.params)
        if params:
            kwargs["params"] = params

        if isinstance(body, MultipartForm):
            kwargs["data"] = {k: str(v) for k, v in body.fields.items()}
            kwargs["files"] = dict(body.files)
        elif isinstance(body, (bytes, bytearray)):
            kwargs["content"] = bytes(body)
        elif body is not None:
            kwargs["content"] = json.dumps(body)

        kwargs["headers"] = build_request_headers(
            accept=accept,
            json_body=body is not None
            and not isinstance(body, (MultipartForm, bytes, bytearray)),
        )

        timeout_ms = self.config.timeout_ms
        started = time.monotonic()
        logger.debug("%s %s", request.method, url)

        try:
            response = await asyncio.wait_for(
                self._send(request.method, url, kwargs),
                timeout=self.timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise NfeError(
                ErrorKind.TIMEOUT,
                f"Request timeout after {timeout_ms:g}ms",
                cause=exc,
            ) from exc
        except Exception as exc:
            raise from_network_error(exc) from exc

        duration_ms = (time.monotonic() - started) * 1000
        logger.debug(
            "%s %s -> %d (%.0fms)",
            request.method,
            url,
            response.status_code,
            duration_ms,
        )

        return self._handle_response(response)

    async def _send(
        self, method: str, url: str, kwargs: Dict[str, Any]
    ) -> httpx.Response:
        async with httpx.AsyncClient(
            auth=self._auth,
            timeout=httpx.Timeout(self.timeout_seconds),
            transport=self._transport,
        ) as client:
            return await client.request(method, url, **kwargs)

    def _handle_response(self, response: httpx.Response) -> HttpResponse:
        status = response.status_code

        if status == 202:
            location = response.headers.get("location", "").strip()
            if location:
                return HttpResponse(
                    status, AsyncOperation(location=location), response.headers
                )
            raise NfeError(
                ErrorKind.GENERIC,
                "Received 202 Accepted without a Location header",
                status=status,
                details=decode_error_body(response),
            )

        if not 200 <= status < 300:
            raise from_http_response(status, decode_error_body(response))

        return HttpResponse(status, decode_body(response), response.headers)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        accept: Optional[str] = None,
    ) -> HttpResponse:
        """Execute a request under the configured retry policy."""
        descriptor = RequestDescriptor(method.upper(), path, params, body)

        async def _once() -> HttpResponse:
            return await self.execute(descriptor, accept=accept)

        return await retry_async(
            _once,
            self.config.retry_policy,
            operation_name=f"{descriptor.method} {path}",
            sleep=self._sleep,
        )

    async def get(
        self,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        accept: Optional[str] = None,
    ) -> HttpResponse:
        return await self.request("GET", path, params=params, accept=accept)

    async def post(self, path: str, body: Any = None) -> HttpResponse:
        return await self.request("POST", path, body=body)

    async def put(self, path: str, body: Any = None) -> HttpResponse:
        return await self.request("PUT", path, body=body)

    async def delete(self, path: str) -> HttpResponse:
        return await self.request("DELETE", path)
