"""Small time-bounded cache used for webhook delivery dedup."""

import time
from collections.abc import Callable, Hashable


class ExpiringCache:
    """Remembers keys for a fixed time-to-live."""

    def __init__(self, ttl_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._expires: dict[Hashable, float] = {}

    def _purge(self) -> None:
        now = self._clock()
        for key in [k for k, expires in self._expires.items() if expires <= now]:
            del self._expires[key]

    def __contains__(self, key: Hashable) -> bool:
        self._purge()
        return key in self._expires

    def __len__(self) -> int:
        self._purge()
        return len(self._expires)

    def add(self, key: Hashable) -> None:
        self._expires[key] = self._clock() + self.ttl_seconds

    def seen(self, key: Hashable) -> bool:
        """Return True if ``key`` is live; otherwise record it and return False."""
        if key in self:
            return True
        self.add(key)
        return False
