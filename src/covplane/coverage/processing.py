"""Bounded-parallelism processing of per-file coverage entries.

Remapping raw coverage (reading sources, converting offsets to lines) is
embarrassingly parallel but IO heavy. An unbounded fan-out can exhaust file
descriptors on large codebases, so work runs behind a semaphore sized by
``processing_concurrency``.

Guarantees:
- Output order equals input order, whatever the completion order
- At most ``limit`` work items in flight
- The first item error is re-raised once in-flight work has drained;
  items that have not started yet are skipped
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

import structlog

log = structlog.get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class ConcurrencyLimitedProcessor:
    """Runs async work over items with a fixed pool size."""

    def __init__(self, limit: int) -> None:
        if limit < 1:
            raise ValueError(f"Concurrency limit must be a positive integer, got {limit}")
        self.limit = limit
        self._in_flight = 0
        self.max_in_flight = 0

    async def process_all(
        self,
        items: Iterable[T],
        work: Callable[[T], Awaitable[R]],
    ) -> list[R]:
        item_list = list(items)
        results: list[Any] = [None] * len(item_list)
        sem = asyncio.Semaphore(self.limit)
        first_error: Exception | None = None

        async def run_item(index: int, item: T) -> None:
            nonlocal first_error
            async with sem:
                if first_error is not None:
                    return
                self._in_flight += 1
                self.max_in_flight = max(self.max_in_flight, self._in_flight)
                try:
                    results[index] = await work(item)
                except Exception as e:
                    if first_error is None:
                        first_error = e
                        log.debug("processing_item_failed", index=index, error=str(e))
                finally:
                    self._in_flight -= 1

        tasks = [asyncio.create_task(run_item(i, item)) for i, item in enumerate(item_list)]
        # run_item never raises, so gather waits for every in-flight item
        await asyncio.gather(*tasks)

        if first_error is not None:
            raise first_error
        return results


async def process_all(
    items: Iterable[T],
    limit: int,
    work: Callable[[T], Awaitable[R]],
) -> list[R]:
    """Process ``items`` with at most ``limit`` concurrent ``work`` calls."""
    return await ConcurrencyLimitedProcessor(limit).process_all(items, work)
