"""Bounded-window batch runner used to stay under code-host rate limits."""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def run_in_batches(
    items: Sequence[T],
    worker: Callable[[T], R],
    *,
    batch_size: int = 5,
    pause: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
    on_batch_done: Callable[[int], None] | None = None,
) -> List[R]:
    """Run ``worker`` over ``items`` ``batch_size`` at a time, pausing between batches.

    Results keep input order. Exceptions raised by ``worker`` propagate, so
    callers that want log-and-continue must catch inside the worker.
    ``on_batch_done`` receives the number of items processed so far.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    results: list[R] = []
    with ThreadPoolExecutor(max_workers=batch_size) as pool:
        for start in range(0, len(items), batch_size):
            batch = items[start : start + batch_size]
            results.extend(pool.map(worker, batch))
            done = start + len(batch)
            if on_batch_done is not None:
                on_batch_done(done)
            if done < len(items) and pause > 0:
                sleep(pause)
    return results
