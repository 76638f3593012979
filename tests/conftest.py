"""Pytest configuration and fixtures."""

import os
import sys
from pathlib import Path
from typing import Any, Callable, List, Optional

import httpx
import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from nfe.client import NfeClient  # noqa: E402
from nfe.lib.resilience import RetryPolicy  # noqa: E402

TEST_API_KEY = "test-key"

NFE_ENV_VARS = (
    "NFE_API_KEY",
    "NFE_BASE_URL",
    "NFE_TIMEOUT_MS",
    "NFE_ENVIRONMENT",
    "NFE_MAX_RETRIES",
    "NFE_BASE_DELAY_MS",
    "NFE_MAX_DELAY_MS",
    "NFE_BACKOFF_MULTIPLIER",
)


@pytest.fixture(autouse=True)
def clean_nfe_env(monkeypatch):
    """Keep NFE_* variables from the developer shell (or a loaded .env) out of tests."""
    for name in NFE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    for name in NFE_ENV_VARS:
        os.environ.pop(name, None)


class FakeClock:
    """Monotonic clock that only advances when ``sleep`` is awaited."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Small retry policy so exhaustion tests stay readable."""
    return RetryPolicy(max_retries=2, base_delay_ms=10, max_delay_ms=100)


@pytest.fixture
def make_client(clock) -> Callable[..., NfeClient]:
    """Factory for clients wired to an ``httpx.MockTransport`` handler.

    Retries and polling sleep on the fake clock, so no test waits for real.
    """

    def _make(
        handler: Callable[[httpx.Request], Any],
        retry_policy: Optional[RetryPolicy] = None,
        **kwargs: Any,
    ) -> NfeClient:
        return NfeClient(
            kwargs.pop("api_key", TEST_API_KEY),
            retry_policy=retry_policy or RetryPolicy.none(),
            transport=httpx.MockTransport(handler),
            sleep=clock.sleep,
            clock=clock,
            **kwargs,
        )

    return _make
