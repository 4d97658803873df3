"""
Small in-process TTL cache for upstream lookups (news feed, air quality).
"""
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple


class TTLCache:
    """
    Entries expire after `ttl` seconds. Expired entries are dropped on every
    write, and the oldest entry is evicted once `maxsize` is reached.
    """

    def __init__(self, ttl: float, maxsize: int = 256, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.maxsize = maxsize
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[float, Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl:
            del self._entries[key]
            return None
        return value

    def set(self, key: Hashable, value: Any) -> None:
        now = self._clock()
        for k in [k for k, (stored_at, _) in self._entries.items() if now - stored_at >= self.ttl]:
            del self._entries[k]
        self._entries.pop(key, None)
        while len(self._entries) >= self.maxsize:
            # dicts keep insertion order, so the first key is the oldest write
            del self._entries[next(iter(self._entries))]
        self._entries[key] = (now, value)

    def clear(self) -> None:
        self._entries.clear()
