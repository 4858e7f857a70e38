"""Per-group fan-out for stage work.

Stages hand each group's records to a worker as a unit, so no rule ever
needs to see two groups at once.  Results come back in input order
regardless of the worker count.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, TypeVar

from janus.config import settings

logger = logging.getLogger("janus.parallel")

T = TypeVar("T")
R = TypeVar("R")


def map_groups(fn: Callable[[T], R], items: Iterable[T], max_workers: int | None = None) -> list[R]:
    """Apply *fn* to every item, on a thread pool when ``max_workers > 1``."""
    workers = max_workers if max_workers is not None else settings.max_workers
    items = list(items)
    if workers <= 1 or len(items) <= 1:
        return [fn(item) for item in items]
    logger.debug("Dispatching %d groups across %d workers", len(items), workers)
    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(fn, items))
