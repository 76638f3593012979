"""Shared plumbing for API resources."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

from nfe.lib.http import HttpClient
from nfe.lib.polling import (
    DEFAULT_COMPLETION,
    CompletionPolicy,
    PollOptions,
    poll_until_complete,
)

Sleep = Callable[[float], Awaitable[Any]]
Clock = Callable[[], float]


class Resource:
    """Base for resource wrappers bound to one :class:`HttpClient`."""

    def __init__(
        self,
        http: HttpClient,
        *,
        sleep: Optional[Sleep] = None,
        clock: Optional[Clock] = None,
    ):
        self.http = http
        self._sleep = sleep
        self._clock = clock

    async def _fetch(self, path: str) -> Any:
        response = await self.http.get(path)
        return response.data

    async def _poll(
        self,
        location: str,
        policy: CompletionPolicy = DEFAULT_COMPLETION,
        options: Optional[PollOptions] = None,
    ) -> Any:
        return await poll_until_complete(
            self._fetch,
            location,
            policy,
            options,
            sleep=self._sleep,
            clock=self._clock,
        )
