import logging
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import Callable, Iterable, List

logger = logging.getLogger(__name__)


@contextmanager
def timed(name: str):
    start_time = time.time()
    try:
        yield
    finally:
        logger.info(f"{name} took {time.time() - start_time:.2f} seconds")


def parallel_map(func: Callable, items: Iterable, workers: int = 1) -> List:
    """Apply ``func`` to every item on a fixed-size thread pool.

    Results come back in input order. Each call owns its own output slot,
    so callers must not share mutable state between items.
    """
    items = list(items)
    if workers <= 1 or len(items) <= 1:
        return [func(item) for item in items]

    with ThreadPoolExecutor(max_workers=min(workers, len(items))) as executor:
        return list(executor.map(func, items))
