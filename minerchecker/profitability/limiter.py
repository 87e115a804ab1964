"""
Concurrency limiter for outbound estimator calls.

A fixed-size worker pool: at most max_concurrency tasks run at once, the rest
wait in the executor's FIFO work queue and start in submission order as slots
free up. No priorities, no cancellation.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List

logger = logging.getLogger('profitability.limiter')

DEFAULT_CONCURRENCY = 8
MAX_CONCURRENCY = 20


def clamp_concurrency(value, upper: int = MAX_CONCURRENCY) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        n = DEFAULT_CONCURRENCY
    return max(1, min(upper, n))


class ConcurrencyLimiter:
    """
    Bounded admission gate over a thread pool.

    Usage:
        limiter = ConcurrencyLimiter(8)
        results = limiter.map(fetch, identifiers)   # same order as identifiers

    active / peak expose the in-flight counters (peak never exceeds max_concurrency).
    """

    def __init__(self, max_concurrency=DEFAULT_CONCURRENCY, upper: int = MAX_CONCURRENCY):
        self.max_concurrency = clamp_concurrency(max_concurrency, upper)
        self.active = 0
        self.peak = 0
        self.completed = 0
        self._lock = threading.Lock()

    def _run(self, fn: Callable, item):
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            return fn(item)
        finally:
            with self._lock:
                self.active -= 1
                self.completed += 1

    def map(self, fn: Callable, items: Iterable) -> List:
        """Run fn over items with bounded parallelism; results keep input order."""
        items = list(items)
        if not items:
            return []
        workers = min(self.max_concurrency, len(items))
        logger.debug("Running %d tasks with %d workers", len(items), workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='estimator') as pool:
            return list(pool.map(lambda item: self._run(fn, item), items))
