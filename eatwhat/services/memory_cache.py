"""In-process TTL cache tier.

Entries expire lazily on read; nothing sweeps them. Memory stays bounded by
the diversity of requests, not their volume.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, Generic, Optional, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    def __init__(self, ttl_sec: float, clock: Callable[[], float] = time.monotonic, name: str = "cache"):
        self.ttl_sec = ttl_sec
        self.name = name
        self._clock = clock
        self._entries: Dict[str, tuple[float, V]] = {}

    def get(self, key: str) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at < self._clock():
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: str, value: V) -> None:
        self._entries[key] = (self._clock() + self.ttl_sec, value)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
