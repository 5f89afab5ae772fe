"""Bounded-concurrency worker pool for oracle sub-calls.

Keeps ``min(concurrency, len(items))`` units of work in flight and starts
the next item as soon as any unit finishes, so one slow oracle call never
stalls a whole batch. All bookkeeping happens in the single task driving
the pool; processors only return values.

Processor exceptions are not caught here. The first failure cancels the
remaining in-flight work and propagates to the caller, so processors that
must degrade gracefully have to catch their own errors.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

Processor = Callable[[T, int], Awaitable[R]]
ProgressCallback = Callable[[int, int], None]
StartCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class PoolResult(Generic[T, R]):
    """Result of one unit of work, tagged with its submission index."""

    item: T
    result: R
    index: int


async def stream_with_pool(
    items: Sequence[T],
    processor: Processor,
    concurrency: int,
    on_start: StartCallback | None = None,
) -> AsyncIterator[PoolResult[T, R]]:
    """Yield each result as soon as it completes (completion order).

    Stopping iteration early cancels whatever is still in flight.

    Args:
        items: Work items, submitted in order
        processor: ``async (item, index) -> result``
        concurrency: Maximum simultaneous units of work
        on_start: Called with ``(index, total)`` as each unit starts
    """
    if concurrency < 1:
        raise ValueError("concurrency must be at least 1")

    total = len(items)
    if total == 0:
        return

    in_flight: dict[asyncio.Future, int] = {}
    next_index = 0

    def start_next() -> None:
        nonlocal next_index
        index = next_index
        next_index += 1
        if on_start:
            on_start(index, total)
        task = asyncio.ensure_future(processor(items[index], index))
        in_flight[task] = index

    try:
        while next_index < min(concurrency, total):
            start_next()

        while in_flight:
            done, _pending = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
            finished = sorted((in_flight.pop(task), task) for task in done)

            # Read every failure in the batch so none is reported as unretrieved
            failures = [task.exception() for _index, task in finished if not task.cancelled()]
            first_failure = next((e for e in failures if e is not None), None)
            if first_failure is not None:
                raise first_failure

            completed: list[PoolResult[T, R]] = []
            for index, task in finished:
                completed.append(PoolResult(item=items[index], result=task.result(), index=index))
                if next_index < total:
                    start_next()

            for pool_result in completed:
                yield pool_result
    finally:
        if in_flight:
            logger.debug(f"Cancelling {len(in_flight)} in-flight pool tasks")
            for task in in_flight:
                task.cancel()
            await asyncio.gather(*in_flight, return_exceptions=True)


async def process_with_pool(
    items: Sequence[T],
    processor: Processor,
    concurrency: int,
    on_progress: ProgressCallback | None = None,
    on_start: StartCallback | None = None,
) -> list[PoolResult[T, R]]:
    """Run ``processor`` over every item and collect results in submission order.

    ``on_progress(completed, total)`` fires after each completion, in
    completion order, before the final sort.
    """
    total = len(items)
    results: list[PoolResult[T, R]] = []
    if total == 0:
        return results

    async for pool_result in stream_with_pool(items, processor, concurrency, on_start=on_start):
        results.append(pool_result)
        if on_progress:
            on_progress(len(results), total)

    results.sort(key=lambda r: r.index)
    return results
