"""Client configuration.

:class:`ClientConfig` is an immutable snapshot of everything a request needs:
credential, base URL, timeout and retry policy. Updating configuration means
building a new snapshot (:meth:`ClientConfig.replace`) and swapping it in;
requests already in flight keep the snapshot they started with.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, List, Optional

from nfe.lib.auth import resolve_api_key
from nfe.lib.env import get_env, get_float_env, get_int_env
from nfe.lib.errors import invalid_configuration
from nfe.lib.resilience import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_MAX_DELAY_MS,
    DEFAULT_MAX_RETRIES,
    RetryPolicy,
)

__all__ = [
    "ClientConfig",
    "DEFAULT_BASE_URL",
    "DEFAULT_TIMEOUT_MS",
    "ENVIRONMENTS",
]

DEFAULT_BASE_URL = "https://api.nfe.io/v1"
DEFAULT_TIMEOUT_MS = 30000

# Production and development share one endpoint; the API key selects the
# environment server-side.
ENVIRONMENTS = ("production", "development")


@dataclass(frozen=True)
class ClientConfig:
    """Immutable client configuration.

    Example:
        config = ClientConfig(api_key="abc123", timeout_ms=10000)
        config.validate()
        faster = config.replace(retry_policy=RetryPolicy.none())
    """

    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    timeout_ms: float = DEFAULT_TIMEOUT_MS
    environment: str = "production"
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    def validation_errors(self) -> List[str]:
        """Return configuration problems other than a missing API key."""
        errors: List[str] = []

        if not self.base_url:
            errors.append("base_url is required (e.g., 'https://api.nfe.io/v1')")

        if self.timeout_ms <= 0:
            errors.append("timeout_ms must be > 0")

        if self.environment not in ENVIRONMENTS:
            errors.append(
                f"environment must be one of {', '.join(ENVIRONMENTS)} "
                f"(got '{self.environment}')"
            )

        errors.extend(self.retry_policy.validation_errors())
        return errors

    def validate(self) -> "ClientConfig":
        """Raise a CONFIGURATION error if this snapshot cannot be used."""
        resolve_api_key(self.api_key)

        errors = self.validation_errors()
        if errors:
            raise invalid_configuration(
                "Invalid client configuration: " + "; ".join(errors),
                errors=errors,
            )
        return self

    def replace(self, **changes: Any) -> "ClientConfig":
        """Return a new validated snapshot with ``changes`` applied."""
        return dataclasses.replace(self, **changes).validate()

    @classmethod
    def from_env(cls, **overrides: Any) -> "ClientConfig":
        """Build configuration from ``NFE_*`` environment variables.

        Explicit ``overrides`` win over the environment. The result is not
        validated; call :meth:`validate` before use.
        """
        retry_policy = RetryPolicy(
            max_retries=get_int_env("NFE_MAX_RETRIES", DEFAULT_MAX_RETRIES),
            base_delay_ms=get_float_env("NFE_BASE_DELAY_MS", DEFAULT_BASE_DELAY_MS),
            max_delay_ms=get_float_env("NFE_MAX_DELAY_MS", DEFAULT_MAX_DELAY_MS),
            backoff_multiplier=get_float_env(
                "NFE_BACKOFF_MULTIPLIER", DEFAULT_BACKOFF_MULTIPLIER
            ),
        )
        values: dict[str, Any] = {
            "api_key": get_env("NFE_API_KEY"),
            "base_url": get_env("NFE_BASE_URL", DEFAULT_BASE_URL),
            "timeout_ms": get_float_env("NFE_TIMEOUT_MS", DEFAULT_TIMEOUT_MS),
            "environment": get_env("NFE_ENVIRONMENT", "production"),
            "retry_policy": retry_policy,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def describe(self) -> dict[str, Any]:
        """Loggable view of the configuration without the credential."""
        return {
            "base_url": self.base_url,
            "environment": self.environment,
            "timeout_ms": self.timeout_ms,
            "has_api_key": bool(self.api_key),
            "retry_policy": self.retry_policy.to_dict(),
        }
