"""Authentication and request header construction.

NFE.io authenticates with HTTP Basic auth: the API key is the username and
the password is empty, so every request carries
``Authorization: Basic base64("<api_key>:")``.

API keys may be written as environment variable references (``${NFE_API_KEY}``)
and are expanded when the auth object is built.
"""

from __future__ import annotations

import platform
from typing import Dict, Optional

import httpx
import requests_toolbelt
import tenacity
from requests_toolbelt.utils.user_agent import user_agent

from nfe._version import __version__
from nfe.lib.env import expand_env_vars
from nfe.lib.errors import invalid_configuration, missing_api_key

__all__ = [
    "JSON_CONTENT_TYPE",
    "PDF_CONTENT_TYPE",
    "XML_CONTENT_TYPE",
    "USER_AGENT",
    "build_basic_auth",
    "resolve_api_key",
    "build_request_headers",
]

JSON_CONTENT_TYPE = "application/json"
PDF_CONTENT_TYPE = "application/pdf"
XML_CONTENT_TYPE = "application/xml"

USER_AGENT = user_agent(
    "nfe-foundry",
    __version__,
    extras=[
        ("httpx", getattr(httpx, "__version__", "unknown")),
        ("tenacity", getattr(tenacity, "__version__", "unknown")),
        ("requests-toolbelt", getattr(requests_toolbelt, "__version__", "unknown")),
        ("python", platform.python_version()),
    ],
)


def resolve_api_key(api_key: Optional[str]) -> str:
    """Expand ${VAR} references in the API key and return the usable value.

    Raises:
        NfeError: CONFIGURATION if the key is missing, expands to nothing or
            references an unset environment variable
    """
    try:
        key = expand_env_vars(api_key or "", strict=True).strip()
    except KeyError as exc:
        raise invalid_configuration(
            f"Cannot resolve API key: {exc.args[0]}", field="api_key"
        ) from exc
    if not key:
        raise missing_api_key()
    return key


def build_basic_auth(api_key: Optional[str]) -> httpx.BasicAuth:
    """Build Basic auth with the API key as username and an empty password."""
    return httpx.BasicAuth(resolve_api_key(api_key), "")


def build_request_headers(
    *,
    accept: Optional[str] = None,
    json_body: bool = False,
    extra_headers: Optional[Dict[str, str]] = None,
) -> Dict[str, str]:
    """Build the headers sent with every request.

    Args:
        accept: Accept override for binary downloads (PDF/XML)
        json_body: Whether the request carries a JSON body. Multipart and raw
            payloads leave Content-Type unset so httpx can supply it.
        extra_headers: Additional headers to include

    Returns:
        Header dictionary (Authorization is applied separately by httpx)
    """
    headers: Dict[str, str] = {
        "Accept": accept or JSON_CONTENT_TYPE,
        "User-Agent": USER_AGENT,
    }

    if json_body:
        headers["Content-Type"] = JSON_CONTENT_TYPE

    if extra_headers:
        for key, value in extra_headers.items():
            headers[key] = expand_env_vars(value, strict=False)

    return headers
