"""Small in-process TTL cache for reference and candidate data."""

from __future__ import annotations

import re
import time
from typing import Any, Callable


class TTLCache:
    """Key/value cache whose entries expire ``ttl_seconds`` after being stored.

    A ttl of 0 disables caching: every ``get`` misses.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        if self.ttl_seconds <= 0:
            return
        self._entries[key] = (self._clock() + self.ttl_seconds, value)

    def clear(self, pattern: str | None = None) -> int:
        """Drop every entry, or only keys matching the regular expression ``pattern``."""
        if pattern is None:
            removed = len(self._entries)
            self._entries.clear()
            return removed
        regex = re.compile(pattern)
        doomed = [key for key in self._entries if regex.search(key)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def __len__(self) -> int:
        return len(self._entries)
