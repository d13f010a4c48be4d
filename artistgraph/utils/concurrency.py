"""Bounded fan-out helpers for provider enrichment.

``throttled_gather`` is ``asyncio.gather`` with a semaphore around each
awaitable. The batch orchestrator uses it as its worker pool: one awaitable
per artist, at most ``enrichment_workers`` running at once.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from artistgraph.utils.logging import get_logger

_T = TypeVar("_T")

DEFAULT_WORKERS = 4

_logger: structlog.BoundLogger = get_logger(__name__)


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore | None = None,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently, at most ``semaphore`` slots at a time.

    Parameters
    ----------
    coros:
        Awaitable objects to execute.
    semaphore:
        Concurrency bound. A fresh ``Semaphore(DEFAULT_WORKERS)`` is used
        when omitted.
    return_exceptions:
        If ``True``, exceptions are returned in place of results, as with
        ``asyncio.gather``.

    Returns
    -------
    list[_T | BaseException]
        Results in input order.
    """
    if semaphore is None:
        semaphore = asyncio.Semaphore(DEFAULT_WORKERS)

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    return await asyncio.gather(
        *[_wrapped(c) for c in coros], return_exceptions=return_exceptions
    )


async def bounded_map(
    fn: Callable[[Any], Awaitable[_T]],
    items: list[Any],
    workers: int = DEFAULT_WORKERS,
    logger: structlog.BoundLogger | None = None,
    error_msg: str = "worker_task_failed",
) -> list[tuple[Any, _T | BaseException]]:
    """Apply *fn* to every item with at most *workers* concurrent calls.

    Failures are logged and returned alongside their item rather than
    raised, so one bad item never cancels the others.
    """
    if logger is None:
        logger = _logger

    semaphore = asyncio.Semaphore(max(1, workers))
    results = await throttled_gather(
        [fn(item) for item in items], semaphore=semaphore, return_exceptions=True
    )

    paired: list[tuple[Any, _T | BaseException]] = []
    for item, result in zip(items, results):
        if isinstance(result, BaseException):
            logger.warning(error_msg, item=str(item), error=str(result))
        paired.append((item, result))
    return paired
