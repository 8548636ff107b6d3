"""
Bounded in-memory TTL cache.

Holds per-viewer ranking snapshots, so it is keyed by viewer and capped:
once `max_entries` is reached the least recently used entry is evicted.
A shared store (e.g. Redis) can implement `CacheInterface` for
multi-process deployments.
"""
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from threading import Lock
from typing import Callable, Generic, Optional, Tuple, TypeVar

T = TypeVar("T")


class CacheInterface(ABC, Generic[T]):
    @abstractmethod
    def get(self, key: str) -> Optional[T]:
        """Live value for key, or None when missing or expired."""

    @abstractmethod
    def set(self, key: str, value: T, ttl_seconds: Optional[float] = None) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...

    @abstractmethod
    def purge_expired(self) -> int:
        """Drop expired entries and return how many were dropped."""

    @abstractmethod
    def __len__(self) -> int:
        ...


class InMemoryCache(CacheInterface[T]):
    """
    Thread-safe LRU cache with per-entry expiry.

    Usage:
        cache: CacheInterface[RankingSnapshot] = InMemoryCache(max_entries=10_000)
        cache.set("ranking:viewer_1", snapshot, ttl_seconds=120)
    """

    def __init__(
        self,
        default_ttl_seconds: Optional[float] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        # key -> (value, expires_at); most recently used last
        self._store: "OrderedDict[str, Tuple[T, Optional[float]]]" = OrderedDict()
        self._default_ttl = default_ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._lock = Lock()
        self.evictions = 0

    def get(self, key: str) -> Optional[T]:
        with self._lock:
            item = self._store.get(key)
            if item is None:
                return None
            value, expires_at = item
            if expires_at is not None and self._clock() > expires_at:
                del self._store[key]
                return None
            self._store.move_to_end(key)
            return value

    def set(self, key: str, value: T, ttl_seconds: Optional[float] = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        expires_at = self._clock() + ttl if ttl else None
        with self._lock:
            self._store[key] = (value, expires_at)
            self._store.move_to_end(key)
            if self._max_entries is not None:
                while len(self._store) > self._max_entries:
                    self._store.popitem(last=False)
                    self.evictions += 1

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._store.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [
                key for key, (_, expires_at) in self._store.items()
                if expires_at is not None and now > expires_at
            ]
            for key in expired:
                del self._store[key]
        return len(expired)

    def __len__(self) -> int:
        # May include entries that expired but were not yet purged
        with self._lock:
            return len(self._store)
