"""Bounded-concurrency fan-out over mailbox directory entries."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

E = TypeVar("E")
R = TypeVar("R")


async def run_all(
    entries: Sequence[E],
    worker: Callable[[E], Awaitable[R]],
    concurrency_limit: int,
) -> list[R]:
    """Run ``worker`` once per entry with at most ``concurrency_limit`` in flight.

    Waiting tasks acquire a slot in submission order. Results are returned in
    entry order once every task has settled. Workers are expected to convert
    their own failures into result values; an exception escaping a worker is
    re-raised after all tasks have settled.

    Args:
        entries: Items to process.
        worker: Async callable invoked per entry.
        concurrency_limit: Maximum number of concurrently running workers.

    Returns:
        One result per entry, in entry order.
    """
    if concurrency_limit < 1:
        raise ValueError("concurrency_limit must be >= 1")

    sem = asyncio.Semaphore(concurrency_limit)

    async def _run(entry: E) -> R:
        """Run one worker inside the concurrency bound."""
        async with sem:
            return await worker(entry)

    tasks = [asyncio.create_task(_run(entry)) for entry in entries]
    if not tasks:
        return []

    settled = await asyncio.gather(*tasks, return_exceptions=True)
    for outcome in settled:
        if isinstance(outcome, BaseException):
            raise outcome
    return list(settled)  # type: ignore[arg-type]
