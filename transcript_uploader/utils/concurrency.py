"""Bounded-concurrency helpers for fan-out calls against the ingestion service.

The upload and deletion runs are strictly sequential, but look-ups such as
transcript existence checks can safely overlap.  ``throttled_gather`` is a
drop-in replacement for ``asyncio.gather`` that wraps each awaitable in a
semaphore acquire/release so at most ``limit`` requests are in flight.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

import structlog

from transcript_uploader.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


async def throttled_gather(
    coros: list[Awaitable[_T]],
    limit: int = 4,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently, at most *limit* at a time.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    limit:
        Maximum number of awaitables executing at once (minimum 1).
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """
    semaphore = asyncio.Semaphore(max(1, limit))

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    results = await asyncio.gather(
        *[_wrapped(c) for c in coros], return_exceptions=return_exceptions
    )
    failures = sum(1 for r in results if isinstance(r, BaseException))
    if failures:
        _logger.debug("throttled_gather_failures", total=len(results), failed=failures)
    return results
