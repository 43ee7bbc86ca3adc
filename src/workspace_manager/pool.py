"""Bounded fan-out/fan-in for per-repository work."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def fan_out(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    max_workers: int,
) -> list[R]:
    """Run ``worker`` over ``items`` with at most ``max_workers`` in flight.

    Results come back in input order once every worker has finished.
    Workers are expected to capture their own failures.
    """

    semaphore = asyncio.Semaphore(max(1, max_workers))

    async def _run(item: T) -> R:
        async with semaphore:
            return await worker(item)

    return list(await asyncio.gather(*(_run(item) for item in items)))


__all__ = ["fan_out"]
