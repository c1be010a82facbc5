from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def gather_in_chunks(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    limit: int = 4,
) -> list[R]:
    """Run ``worker`` over ``items`` at most ``limit`` at a time, keeping input order.

    Exceptions are not caught here; workers that must not abort their
    siblings are expected to handle their own failures.
    """

    if limit < 1:
        raise ValueError("limit must be at least 1")
    results: list[R] = []
    for start in range(0, len(items), limit):
        chunk = items[start : start + limit]
        results.extend(await asyncio.gather(*(worker(item) for item in chunk)))
    return results
