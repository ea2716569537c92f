import logging
import os
import time
from enum import Enum
from pathlib import Path
from typing import Callable


class StabilityVerdict(str, Enum):
    STABLE = "stable"
    TIMED_OUT = "timed_out"      # never settled; caller proceeds anyway
    VANISHED = "vanished"        # path disappeared; caller abandons the file


class StabilityGate:
    """Waits until a file has stopped growing before it is read.

    Backup writers create a file and append to it; reading too early yields
    truncated input. The size is sampled every ``poll_interval_s``; the file
    is stable once the size has not changed for ``stable_for_s``.
    """

    def __init__(
        self,
        poll_interval_s: float = 0.2,
        stable_for_s: float = 0.5,
        max_wait_s: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.poll_interval_s = poll_interval_s
        self.stable_for_s = stable_for_s
        self.max_wait_s = max_wait_s
        self._clock = clock
        self._sleep = sleep
        self.logger = logging.getLogger(__name__)

    def wait(self, path: Path) -> StabilityVerdict:
        start = self._clock()
        last_size = -1
        stable_since = start

        while True:
            now = self._clock()
            if now - start > self.max_wait_s:
                self.logger.warning(
                    f"File {Path(path).name} did not stabilize within {self.max_wait_s:g}s, proceeding anyway"
                )
                return StabilityVerdict.TIMED_OUT

            try:
                size = os.stat(path).st_size
            except FileNotFoundError:
                return StabilityVerdict.VANISHED
            except OSError as e:
                self.logger.debug(f"stat failed for {path}: {e}; retrying")
                self._sleep(self.poll_interval_s)
                continue

            if size != last_size:
                last_size = size
                stable_since = now
            elif now - stable_since >= self.stable_for_s:
                return StabilityVerdict.STABLE

            self._sleep(self.poll_interval_s)

    def await_stable(self, path: Path) -> bool:
        """True to proceed (stable or gave up waiting), False when abandoned."""
        return self.wait(path) != StabilityVerdict.VANISHED
