import threading
import time
from collections import OrderedDict
from pathlib import Path
from typing import Optional, Union

PathKey = Union[str, Path]


class RecentPathIndex:
    """Bounded path -> last-touch timestamp index.

    Entries are kept in touch order, so expired entries always sit at the
    front and are swept in amortised O(1) on every touch. ``max_entries`` caps
    memory even if everything is touched inside one window.
    Timestamps must come from a monotonic clock.
    """

    def __init__(self, window_s: float, max_entries: int = 100_000):
        self.window_s = window_s
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, float]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _sweep(self, now: float) -> None:
        while self._entries:
            key, stamp = next(iter(self._entries.items()))
            if now - stamp < self.window_s and len(self._entries) <= self.max_entries:
                break
            self._entries.popitem(last=False)

    def seen_within(self, path: PathKey, now: float) -> bool:
        with self._lock:
            stamp = self._entries.get(str(path))
        return stamp is not None and now - stamp < self.window_s

    def touch(self, path: PathKey, now: float) -> None:
        key = str(path)
        with self._lock:
            self._entries[key] = now
            self._entries.move_to_end(key)
            self._sweep(now)

    def touch_if_stale(self, path: PathKey, now: float) -> bool:
        """Atomically records ``path`` unless it was touched within the window."""
        key = str(path)
        with self._lock:
            stamp = self._entries.get(key)
            if stamp is not None and now - stamp < self.window_s:
                return False
            self._entries[key] = now
            self._entries.move_to_end(key)
            self._sweep(now)
            return True


class DispatchDeduplicator:
    """Suppresses repeated dispatches of the same path within ``window_s``.

    Best-effort only: a conversion that outlives the window can overlap a
    fresh admission of the same path.
    """

    def __init__(self, window_s: float = 2.0, max_entries: int = 100_000):
        self._index = RecentPathIndex(window_s, max_entries)

    def admit(self, path: PathKey, now: Optional[float] = None) -> bool:
        return self._index.touch_if_stale(path, time.monotonic() if now is None else now)

    def __len__(self) -> int:
        return len(self._index)
