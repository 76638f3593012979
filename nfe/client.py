"""NFE.io SDK entry point.

Example:
    client = NfeClient(api_key="abc123")
    invoice = await client.service_invoices.create_and_wait(company_id, data)

    # or, from NFE_* environment variables / a .env file
    client = NfeClient.from_env()
"""

from __future__ import annotations

import logging
import platform
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import httpx

from nfe._version import __version__
from nfe.lib import polling
from nfe.lib.auth import USER_AGENT
from nfe.lib.config import DEFAULT_BASE_URL, DEFAULT_TIMEOUT_MS, ClientConfig
from nfe.lib.env import get_env, load_env_file
from nfe.lib.errors import NfeError, invalid_configuration
from nfe.lib.http import HttpClient
from nfe.lib.polling import DEFAULT_COMPLETION, CompletionPolicy, PollOptions
from nfe.lib.resilience import RetryPolicy
from nfe.resources import CompaniesResource, ServiceInvoicesResource, WebhooksResource

logger = logging.getLogger(__name__)

__all__ = ["NfeClient"]

Sleep = Callable[[float], Awaitable[Any]]
Clock = Callable[[], float]

_CONFIG_FIELDS = ("api_key", "base_url", "timeout_ms", "environment", "retry_policy")


class NfeClient:
    """Facade over the transport, poller and resources.

    Configuration is an immutable :class:`ClientConfig` snapshot. Changing it
    swaps the snapshot and drops the cached transport and resources, so later
    calls pick up the new values while requests already in flight finish with
    the old ones.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
        environment: str = "production",
        retry_policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Sleep] = None,
        clock: Optional[Clock] = None,
    ):
        config = ClientConfig(
            api_key=api_key if api_key is not None else get_env("NFE_API_KEY"),
            base_url=base_url,
            timeout_ms=timeout_ms,
            environment=environment,
            retry_policy=retry_policy or RetryPolicy(),
        )
        self._config = config.validate()
        self._transport = transport
        self._sleep = sleep
        self._clock = clock
        self._reset()
        logger.debug("NFE.io client configured: %s", self._config.describe())

    @classmethod
    def from_env(
        cls,
        env_file: Optional[Union[str, Path]] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Sleep] = None,
        clock: Optional[Clock] = None,
        **overrides: Any,
    ) -> "NfeClient":
        """Build a client from ``NFE_*`` environment variables.

        A .env file is loaded first (without overriding variables that are
        already set); keyword ``overrides`` win over both.
        """
        load_env_file(env_file)
        config = ClientConfig.from_env(**overrides)
        return cls(
            config.api_key,
            base_url=config.base_url,
            timeout_ms=config.timeout_ms,
            environment=config.environment,
            retry_policy=config.retry_policy,
            transport=transport,
            sleep=sleep,
            clock=clock,
        )

    def _reset(self) -> None:
        self._http: Optional[HttpClient] = None
        self._companies: Optional[CompaniesResource] = None
        self._service_invoices: Optional[ServiceInvoicesResource] = None
        self._webhooks: Optional[WebhooksResource] = None

    # -- configuration -----------------------------------------------------

    @property
    def config(self) -> ClientConfig:
        return self._config

    def update_config(self, **changes: Any) -> ClientConfig:
        """Validate ``changes`` and swap in the resulting configuration.

        Raises:
            NfeError: CONFIGURATION for unknown fields or invalid values; the
                current configuration is left untouched
        """
        unknown = sorted(set(changes) - set(_CONFIG_FIELDS))
        if unknown:
            raise invalid_configuration(
                f"Unknown configuration field(s): {', '.join(unknown)}",
                fields=unknown,
            )
        self._config = self._config.replace(**changes)
        self._reset()
        logger.debug("NFE.io client reconfigured: %s", self._config.describe())
        return self._config

    def set_api_key(self, api_key: str) -> None:
        self.update_config(api_key=api_key)

    def set_timeout(self, timeout_ms: float) -> None:
        self.update_config(timeout_ms=timeout_ms)

    # -- collaborators -----------------------------------------------------

    @property
    def http(self) -> HttpClient:
        if self._http is None:
            self._http = HttpClient(
                self._config, transport=self._transport, sleep=self._sleep
            )
        return self._http

    def _resource_kwargs(self) -> Dict[str, Any]:
        return {"sleep": self._sleep, "clock": self._clock}

    @property
    def companies(self) -> CompaniesResource:
        if self._companies is None:
            self._companies = CompaniesResource(self.http, **self._resource_kwargs())
        return self._companies

    @property
    def service_invoices(self) -> ServiceInvoicesResource:
        if self._service_invoices is None:
            self._service_invoices = ServiceInvoicesResource(
                self.http, **self._resource_kwargs()
            )
        return self._service_invoices

    @property
    def webhooks(self) -> WebhooksResource:
        if self._webhooks is None:
            self._webhooks = WebhooksResource(self.http, **self._resource_kwargs())
        return self._webhooks

    # -- operations --------------------------------------------------------

    async def poll_until_complete(
        self,
        location: str,
        options: Optional[PollOptions] = None,
        policy: CompletionPolicy = DEFAULT_COMPLETION,
    ) -> Any:
        """Poll a 202 ``Location`` until the resource reaches a terminal status."""
        http = self.http

        async def fetch(path: str) -> Any:
            response = await http.get(path)
            return response.data

        return await polling.poll_until_complete(
            fetch,
            location,
            policy,
            options,
            sleep=self._sleep,
            clock=self._clock,
        )

    async def health_check(self) -> Dict[str, Any]:
        """Probe the API with a one-item company listing.

        Never raises for API failures; the error is reported in the result.
        """
        try:
            await self.http.get("/companies", {"pageCount": 1})
        except NfeError as exc:
            logger.warning("Health check failed: %s", exc)
            return {
                "status": "error",
                "details": {
                    "kind": exc.kind.value,
                    "error": exc.message,
                    "status": exc.status,
                    "config": self._config.describe(),
                },
            }
        return {"status": "ok"}

    def client_info(self) -> Dict[str, Any]:
        return {
            "sdk_version": __version__,
            "python_version": platform.python_version(),
            "platform": platform.platform(),
            "base_url": self._config.base_url,
            "environment": self._config.environment,
            "user_agent": USER_AGENT,
        }
