"""Bounded fan-out submission.

Items are submitted in consecutive chunks of ``max_concurrent``. Each chunk
runs concurrently and fully settles before the next one starts, so at most
``max_concurrent`` submissions are ever in flight.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, List, TypeVar

logger = logging.getLogger(__name__)

__all__ = ["BatchFailure", "submit_batch"]

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class BatchFailure:
    """Placeholder for an item that failed under ``continue_on_error``."""

    error: Exception
    message: str
    data: Any


async def submit_batch(
    items: Iterable[T],
    submit: Callable[[T], Awaitable[R]],
    *,
    max_concurrent: int = 5,
    continue_on_error: bool = False,
) -> List[Any]:
    """Submit every item, at most ``max_concurrent`` at a time.

    Args:
        items: Inputs; results are returned in the same order
        submit: Coroutine function called once per item
        max_concurrent: Chunk size
        continue_on_error: Record failures as :class:`BatchFailure` instead of
            aborting

    Returns:
        One entry per item: the submission result or a BatchFailure

    Raises:
        ValueError: If ``max_concurrent`` < 1
        Exception: Without ``continue_on_error``, the first failure in input
            order, raised once its chunk has settled; later chunks never start
    """
    if max_concurrent < 1:
        raise ValueError("max_concurrent must be >= 1")

    pending = list(items)
    results: List[Any] = []

    for start in range(0, len(pending), max_concurrent):
        chunk = pending[start : start + max_concurrent]
        logger.debug(
            "Submitting batch items %d-%d of %d",
            start + 1,
            start + len(chunk),
            len(pending),
        )
        outcomes = await asyncio.gather(
            *(submit(item) for item in chunk), return_exceptions=True
        )

        for item, outcome in zip(chunk, outcomes):
            if not isinstance(outcome, BaseException):
                results.append(outcome)
                continue
            if not isinstance(outcome, Exception) or not continue_on_error:
                raise outcome
            logger.warning("Batch item %d failed: %s", len(results) + 1, outcome)
            results.append(BatchFailure(outcome, str(outcome), item))

    return results
