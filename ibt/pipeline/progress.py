import logging
import threading
import time
from typing import Optional, Tuple
from ibt.domain.events import AllJobsIdle
from ibt.infrastructure.event_bus import EventBus


class ProgressTracker:
    """Active/total job counters plus the drain barrier used at shutdown.

    ``total`` counts jobs that actually began transformation, not discoveries.
    Invariant: 0 <= active <= total.
    """

    def __init__(self, event_bus: Optional[EventBus] = None):
        self.event_bus = event_bus
        self._active = 0
        self._total = 0
        self._cond = threading.Condition()
        self.logger = logging.getLogger(__name__)

    def job_started(self) -> None:
        with self._cond:
            self._active += 1
            self._total += 1

    def job_finished(self) -> None:
        with self._cond:
            if self._active == 0:
                raise RuntimeError("job_finished() called with no active jobs")
            self._active -= 1
            idle = self._active == 0
            total = self._total
            if idle:
                self._cond.notify_all()
        if idle and total > 0:
            self.logger.info(f"All jobs completed. Total files processed: {total}")
            if self.event_bus:
                self.event_bus.publish(AllJobsIdle(total=total))

    def snapshot(self) -> Tuple[int, int]:
        """Returns (active, total)."""
        with self._cond:
            return self._active, self._total

    @property
    def total(self) -> int:
        with self._cond:
            return self._total

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Blocks until no job is active. Returns False if ``timeout`` passed first."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while self._active > 0:
                if deadline is None:
                    self._cond.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._cond.wait(remaining)
            return True
