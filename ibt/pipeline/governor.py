import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Mapping, Optional


class ConcurrencyGovernor:
    """Named resource pools bounding heavyweight work per converter class.

    Each entry of ``pools`` becomes a counting semaphore of that capacity.
    Classes missing from the table are not throttled.
    """

    def __init__(self, pools: Mapping[str, int]):
        self.capacities: Dict[str, int] = dict(pools)
        self._semaphores: Dict[str, threading.BoundedSemaphore] = {
            name: threading.BoundedSemaphore(capacity) for name, capacity in self.capacities.items()
        }
        self.logger = logging.getLogger(__name__)

    def capacity(self, pool: str) -> Optional[int]:
        return self.capacities.get(pool)

    @contextmanager
    def slot(self, pool: Optional[str]) -> Iterator[None]:
        """Holds one slot of ``pool`` for the duration of the block.

        Blocks until capacity is available; the slot is released on every exit
        path, exceptions included.
        """
        semaphore = self._semaphores.get(pool) if pool else None
        if semaphore is None:
            yield
            return
        if not semaphore.acquire(blocking=False):
            self.logger.debug(f"POOL_WAIT: {pool} at capacity {self.capacity(pool)}")
            semaphore.acquire()
        try:
            yield
        finally:
            semaphore.release()
