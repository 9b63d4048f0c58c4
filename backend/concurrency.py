"""Ordered async map over a fixed pool of workers."""

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def map_bounded(
    items: Sequence[T],
    limit: int,
    transform: Callable[[T], Awaitable[R]],
) -> list[R]:
    """Apply ``transform`` to every item with at most ``limit`` in flight.

    Each worker claims the next unclaimed index until the list is exhausted,
    so results line up with ``items`` regardless of completion order. The
    first exception cancels the remaining workers and is re-raised.
    """
    if limit < 1:
        raise ValueError("limit must be at least 1")

    items = list(items)
    results: list = [None] * len(items)
    next_index = 0

    async def worker():
        nonlocal next_index
        while next_index < len(items):
            index = next_index
            next_index += 1
            results[index] = await transform(items[index])

    workers = [asyncio.ensure_future(worker()) for _ in range(min(limit, len(items)))]
    try:
        await asyncio.gather(*workers)
    except BaseException:
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        raise
    return results
