"""
app/resolution/lru.py

Thread-safe, strictly bounded LRU map for resolved entities.
"""

from __future__ import annotations

from collections import OrderedDict
from threading import RLock
from typing import Any

CacheKey = tuple[str, str]


class LRUCache:
    """
    OrderedDict-backed LRU. A ``get`` hit or a ``put`` moves the key to the
    most-recently-used end; inserting past capacity evicts the oldest key.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("LRU capacity must be at least 1.")
        self.capacity = capacity
        self._entries: OrderedDict[CacheKey, Any] = OrderedDict()
        self._lock = RLock()
        self._evictions = 0

    def get(self, key: CacheKey) -> Any | None:
        with self._lock:
            if key not in self._entries:
                return None
            self._entries.move_to_end(key)
            return self._entries[key]

    def put(self, key: CacheKey, value: Any) -> None:
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            self._entries[key] = value
            while len(self._entries) > self.capacity:
                self._entries.popitem(last=False)
                self._evictions += 1

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def keys(self) -> list[CacheKey]:
        """Keys from least to most recently used."""
        with self._lock:
            return list(self._entries.keys())

    def clear(self, entity_type: str | None = None) -> int:
        """
        Drop every entry, or only the entries of one entity type.

        Returns the number of entries removed.
        """

        with self._lock:
            if entity_type is None:
                removed = len(self._entries)
                self._entries.clear()
                return removed
            doomed = [key for key in self._entries if key[0] == entity_type]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    @property
    def evictions(self) -> int:
        with self._lock:
            return self._evictions
