import time
from typing import Callable, Dict, Hashable

class DedupCache:
    """
    Time-bounded set of recently executed actions. Entries expire after
    `window_seconds` and are swept lazily on access.
    """

    def __init__(self, window_seconds: float = 10.0, clock: Callable[[], float] = time.monotonic):
        self.window_seconds = window_seconds
        self._clock = clock
        self._expiry: Dict[Hashable, float] = {}

    def _sweep(self, now: float):
        expired = [key for key, until in self._expiry.items() if until <= now]
        for key in expired:
            del self._expiry[key]

    def seen(self, key: Hashable) -> bool:
        now = self._clock()
        self._sweep(now)
        return key in self._expiry

    def record(self, key: Hashable):
        now = self._clock()
        self._sweep(now)
        self._expiry[key] = now + self.window_seconds

    def __len__(self) -> int:
        self._sweep(self._clock())
        return len(self._expiry)
