"""Bounded least-recently-used cache for scheduling outcomes."""

from __future__ import annotations

from collections import OrderedDict
from threading import Lock
from typing import Any, Generic, Hashable, List, NamedTuple, Optional, Tuple, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class CacheInfo(NamedTuple):
    hits: int
    misses: int
    maxsize: int
    currsize: int


class LRUCache(Generic[K, V]):
    """Thread-safe LRU map with O(1) get, set and eviction."""

    def __init__(self, maxsize: int) -> None:
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        self.maxsize = maxsize
        self._data: "OrderedDict[K, V]" = OrderedDict()
        self._lock = Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: K) -> Optional[V]:
        """Return the cached value or ``None``; a hit refreshes recency."""
        with self._lock:
            if key in self._data:
                self._data.move_to_end(key)
                self._hits += 1
                return self._data[key]
            self._misses += 1
        return None

    def set(self, key: K, value: V) -> None:
        """Store *value*, evicting the oldest entries past capacity."""
        with self._lock:
            if key in self._data:
                self._data.move_to_end(key)
            self._data[key] = value
            while len(self._data) > self.maxsize:
                self._data.popitem(last=False)

    def __contains__(self, key: Any) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def entries(self) -> List[Tuple[K, V]]:
        """Snapshot of the entries, least recently used first."""
        with self._lock:
            return list(self._data.items())

    def info(self) -> CacheInfo:
        with self._lock:
            return CacheInfo(self._hits, self._misses, self.maxsize, len(self._data))


__all__ = ["CacheInfo", "LRUCache"]
