"""Shared concurrency primitives for the ingestion and query paths.

Two patterns are exposed:

1. **throttled_gather** -- ``asyncio.gather`` with every awaitable wrapped
   in a semaphore acquire/release.  The ingestion orchestrator uses it to
   embed a document's batches in parallel without exceeding the configured
   embedding concurrency.

2. **retry_async** -- call an async function again with exponential
   backoff when it raises one of the given transient exception types.
   Model clients use it for their own retry policy so the orchestrators
   above them never retry.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog

from bankdocs.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore,
    return_exceptions: bool = False,
) -> list[_T | BaseException]:
    """Run awaitables concurrently with at most ``semaphore`` slots busy.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Semaphore bounding how many awaitables run at once.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list
        Results in the same order as the input coroutines.
    """

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


async def retry_async(
    func: Callable[[], Awaitable[_T]],
    retry_on: tuple[type[BaseException], ...],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    operation: str = "call",
    logger: structlog.BoundLogger | None = None,
) -> _T:
    """Await ``func()`` and retry it on transient failures.

    The delay before retry *n* (1-based) is ``base_delay * 2 ** (n - 1)``,
    capped at ``max_delay``.  The last exception is re-raised once
    ``max_retries`` retries are exhausted; exceptions outside ``retry_on``
    are raised immediately.

    Parameters
    ----------
    func:
        Zero-argument coroutine factory; called once per attempt.
    retry_on:
        Exception types considered transient.
    max_retries:
        Number of retries after the first attempt.
    base_delay:
        Initial backoff in seconds.
    max_delay:
        Upper bound for a single backoff.
    operation:
        Name included in the retry log event.
    logger:
        Optional structured logger; defaults to this module's logger.
    """
    log = logger or _logger
    attempt = 0
    while True:
        try:
            return await func()
        except retry_on as exc:
            if attempt >= max_retries:
                raise
            attempt += 1
            delay = min(base_delay * 2 ** (attempt - 1), max_delay)
            log.warning(
                "retrying_after_error",
                operation=operation,
                attempt=attempt,
                max_retries=max_retries,
                backoff_s=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)
