"""Bounded in-memory caches: LRU with optional TTL, and the processed-event dedup set."""

import time
from collections import OrderedDict
from collections.abc import Callable, Hashable, Iterator
from typing import Any, Generic, TypeVar

from alphatracker.logging import get_logger

logger = get_logger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class LRUCache(Generic[K, V]):
    """Capacity-bounded LRU cache.

    Entries are evicted oldest-first once ``capacity`` is exceeded. When ``ttl``
    is set, entries older than ``ttl`` seconds are treated as missing.
    """

    def __init__(
        self,
        capacity: int,
        ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache."""
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._ttl = ttl
        self._clock = clock
        self._data: OrderedDict[K, tuple[V, float]] = OrderedDict()
        self._evictions = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def evictions(self) -> int:
        return self._evictions

    def _expired(self, stored_at: float) -> bool:
        return self._ttl is not None and self._clock() - stored_at > self._ttl

    def get(self, key: K, default: V | None = None) -> V | None:
        entry = self._data.get(key)
        if entry is None:
            return default
        value, stored_at = entry
        if self._expired(stored_at):
            del self._data[key]
            return default
        self._data.move_to_end(key)
        return value

    def set(self, key: K, value: V) -> None:
        if key in self._data:
            self._data.move_to_end(key)
        self._data[key] = (value, self._clock())
        while len(self._data) > self._capacity:
            self._data.popitem(last=False)
            self._evictions += 1

    def setdefault(self, key: K, factory: Callable[[], V]) -> V:
        """Return the cached value, creating it with ``factory`` when missing."""
        value = self.get(key)
        if value is None:
            value = factory()
            self.set(key, value)
        return value

    def pop(self, key: K) -> V | None:
        entry = self._data.pop(key, None)
        return entry[0] if entry else None

    def clear(self) -> None:
        self._data.clear()

    def keys(self) -> list[K]:
        return list(self._data.keys())

    def items(self) -> Iterator[tuple[K, V]]:
        for key, (value, _) in list(self._data.items()):
            yield key, value

    def __contains__(self, key: object) -> bool:
        entry = self._data.get(key)  # type: ignore[arg-type]
        return entry is not None and not self._expired(entry[1])

    def __len__(self) -> int:
        return len(self._data)


class DedupCache:
    """Bounded memory of processed event keys.

    Oldest keys are evicted once the bound is exceeded, so a redelivery older
    than ``capacity`` distinct events is no longer recognised.
    """

    def __init__(self, capacity: int = 10000) -> None:
        """Initialize the dedup cache."""
        self._keys: LRUCache[str, bool] = LRUCache(capacity)

    def seen(self, key: str) -> bool:
        return key in self._keys

    def add(self, key: str) -> None:
        self._keys.set(key, True)

    def check_and_add(self, key: str) -> bool:
        """Record ``key``. Returns ``False`` if it had already been recorded."""
        if key in self._keys:
            logger.debug(f"Duplicate event key {key}")
            return False
        self._keys.set(key, True)
        return True

    def get_state(self) -> dict[str, Any]:
        return {
            "size": len(self._keys),
            "capacity": self._keys.capacity,
            "evictions": self._keys.evictions,
        }

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)
