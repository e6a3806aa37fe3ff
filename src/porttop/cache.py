"""TTL- and size-bounded cache for per-process metadata."""

import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Generic, TypeVar

import structlog

log = structlog.get_logger()

K = TypeVar("K")
V = TypeVar("V")

DEFAULT_TTL = 30.0
DEFAULT_MAX_SIZE = 1000


class MetadataCache(Generic[K, V]):
    """
    Key/value store whose entries expire a fixed time after insertion.

    Capacity is enforced with least-recently-used eviction: ``get`` and
    ``set`` both move a key to the most-recent end, and inserting past
    ``max_size`` drops entries from the least-recent end.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        max_size: int = DEFAULT_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the cache.

        Args:
            ttl: Seconds an entry stays valid after insertion. Default 30.
            max_size: Maximum number of entries. Default 1000.
            clock: Monotonic time source, replaceable in tests.
        """
        self._ttl = ttl
        self._max_size = max(1, max_size)
        self._clock = clock
        self._entries: OrderedDict[K, tuple[V, float]] = OrderedDict()

    @property
    def ttl(self) -> float:
        """Get the entry time-to-live in seconds."""
        return self._ttl

    @property
    def max_size(self) -> int:
        """Get the maximum number of entries."""
        return self._max_size

    def __len__(self) -> int:
        """Return the number of stored entries, expired ones included."""
        return len(self._entries)

    def get(self, key: K) -> V | None:
        """Return the entry for ``key`` if present and unexpired."""
        item = self._entries.get(key)
        if item is None:
            return None
        value, expires_at = item
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    def set(self, key: K, value: V) -> None:
        """Insert or overwrite ``key``, restarting its TTL."""
        if key in self._entries:
            self._entries.move_to_end(key)
        self._entries[key] = (value, self._clock() + self._ttl)
        while len(self._entries) > self._max_size:
            evicted, _ = self._entries.popitem(last=False)
            log.debug("cache_evict", key=evicted)

    def delete(self, key: K) -> None:
        """Remove ``key`` immediately."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Remove every entry."""
        self._entries.clear()

    def cleanup(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)
