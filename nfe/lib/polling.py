"""Polling for asynchronous API operations.

When the API answers 202 + ``Location``, the work continues server-side and
the resource at ``Location`` has to be fetched until it reaches a terminal
status. :func:`poll_until_complete` is the single poller used for that; what
"terminal" means is supplied by a :class:`CompletionPolicy`.

State machine per call:

    Polling --complete--> Completed (resource returned)
    Polling --failed----> Failed (policy.failure_kind raised)
    Polling --limits----> TimedOut (POLLING_TIMEOUT raised)
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
)
from urllib.parse import urlsplit

from nfe.lib.errors import ErrorKind, NfeError

logger = logging.getLogger(__name__)

__all__ = [
    "CompletionPolicy",
    "DEFAULT_COMPLETION",
    "PollOptions",
    "PollState",
    "SERVICE_INVOICE_COMPLETION",
    "poll_until_complete",
    "resolve_location_path",
]

Fetch = Callable[[str], Awaitable[Any]]
Sleep = Callable[[float], Awaitable[Any]]
Clock = Callable[[], float]


def _lowered(values: Iterable[str]) -> FrozenSet[str]:
    return frozenset(v.lower() for v in values)


@dataclass(frozen=True)
class CompletionPolicy:
    """Decides whether a polled resource is complete, failed or pending.

    Status values are compared case-insensitively. The first non-empty string
    among ``status_fields`` is the resource's status.
    """

    status_fields: Tuple[str, ...] = ("status",)
    complete: FrozenSet[str] = frozenset({"completed", "issued"})
    failed: FrozenSet[str] = frozenset({"failed", "cancelled", "error"})
    failure_kind: ErrorKind = ErrorKind.INVOICE_PROCESSING

    def __post_init__(self) -> None:
        object.__setattr__(self, "status_fields", tuple(self.status_fields))
        object.__setattr__(self, "complete", _lowered(self.complete))
        object.__setattr__(self, "failed", _lowered(self.failed))

    def status_of(self, resource: Any) -> Optional[str]:
        if not isinstance(resource, Mapping):
            return None
        for name in self.status_fields:
            value = resource.get(name)
            if isinstance(value, str) and value:
                return value
        return None

    def is_complete(self, resource: Any) -> bool:
        status = self.status_of(resource)
        return status is not None and status.lower() in self.complete

    def is_failed(self, resource: Any) -> bool:
        status = self.status_of(resource)
        return status is not None and status.lower() in self.failed


DEFAULT_COMPLETION = CompletionPolicy()

SERVICE_INVOICE_COMPLETION = CompletionPolicy(
    status_fields=("flowStatus", "status"),
    complete=frozenset({"Issued"}),
    failed=frozenset({"IssueFailed", "CancelFailed", "Cancelled", "Failed", "Error"}),
)


@dataclass(frozen=True)
class PollOptions:
    max_attempts: int = 30
    interval_ms: float = 2000
    timeout_ms: float = 60000

    def validation_errors(self) -> List[str]:
        errors: List[str] = []
        if self.max_attempts < 1:
            errors.append("max_attempts must be >= 1")
        if self.interval_ms < 0:
            errors.append("interval_ms must be >= 0")
        if self.timeout_ms <= 0:
            errors.append("timeout_ms must be > 0")
        return errors


@dataclass
class PollState:
    """Progress of one polling call."""

    attempt: int
    started_at: float
    location_path: str
    last_resource: Any = field(default=None)


def resolve_location_path(location: str) -> str:
    """Turn a ``Location`` header into a path the transport can request.

    Absolute URLs are reduced to path plus query; relative references are
    used verbatim.
    """
    parts = urlsplit(location)
    if not parts.scheme or not parts.netloc:
        return location
    path = parts.path or "/"
    return f"{path}?{parts.query}" if parts.query else path


def _exhausted(
    reason: str,
    state: PollState,
    elapsed_ms: float,
    options: PollOptions,
    location: str,
) -> NfeError:
    if reason == "timeout":
        message = f"Polling timeout after {elapsed_ms:.0f}ms ({state.attempt} attempts)"
    else:
        message = f"Polling exceeded maximum attempts ({options.max_attempts})"
    return NfeError(
        ErrorKind.POLLING_TIMEOUT,
        message,
        details={
            "reason": reason,
            "attempts": state.attempt,
            "elapsed_ms": elapsed_ms,
            "max_attempts": options.max_attempts,
            "interval_ms": options.interval_ms,
            "timeout_ms": options.timeout_ms,
            "location": location,
            "last_resource": state.last_resource,
        },
    )


async def poll_until_complete(
    fetch: Fetch,
    location: str,
    policy: CompletionPolicy = DEFAULT_COMPLETION,
    options: Optional[PollOptions] = None,
    *,
    sleep: Optional[Sleep] = None,
    clock: Optional[Clock] = None,
) -> Any:
    """Fetch ``location`` until ``policy`` says it is complete or failed.

    Args:
        fetch: Coroutine returning the decoded resource at a path; expected
            to go through the retry orchestrator
        location: ``Location`` header value from the 202 response
        policy: Terminal-status predicate for the resource type
        options: Attempt, interval and wall-clock limits
        sleep: Awaitable sleep in seconds (defaults to asyncio.sleep)
        clock: Monotonic clock in seconds (defaults to time.monotonic)

    Returns:
        The completed resource

    Raises:
        NfeError: ``policy.failure_kind`` when the resource reports failure or
            the final fetch errors; POLLING_TIMEOUT when limits run out
    """
    options = options or PollOptions()
    errors = options.validation_errors()
    if errors:
        raise ValueError("; ".join(errors))

    sleep = sleep or asyncio.sleep
    clock = clock or time.monotonic
    state = PollState(
        attempt=0,
        started_at=clock(),
        location_path=resolve_location_path(location),
    )

    def elapsed_ms() -> float:
        return (clock() - state.started_at) * 1000.0

    while state.attempt < options.max_attempts:
        elapsed = elapsed_ms()
        if elapsed > options.timeout_ms:
            raise _exhausted("timeout", state, elapsed, options, location)

        if state.attempt > 0:
            await sleep(options.interval_ms / 1000.0)

        state.attempt += 1
        final = state.attempt == options.max_attempts

        try:
            resource = await fetch(state.location_path)
        except NfeError as exc:
            if final:
                raise NfeError(
                    policy.failure_kind,
                    f"Polling failed: {exc.message}",
                    status=exc.status,
                    details={
                        "location": location,
                        "attempts": state.attempt,
                        "last_resource": state.last_resource,
                    },
                    cause=exc,
                ) from exc
            logger.debug(
                "Poll attempt %d/%d for %s failed: %s",
                state.attempt,
                options.max_attempts,
                state.location_path,
                exc,
            )
            continue

        state.last_resource = resource

        if policy.is_complete(resource):
            logger.debug(
                "Operation at %s completed after %d poll(s)",
                state.location_path,
                state.attempt,
            )
            return resource

        if policy.is_failed(resource):
            raise NfeError(
                policy.failure_kind,
                f"Operation failed with status: {policy.status_of(resource)}",
                details=resource,
            )

    raise _exhausted("max_attempts", state, elapsed_ms(), options, location)
