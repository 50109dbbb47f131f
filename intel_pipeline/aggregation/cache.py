"""
Snapshot cache for aggregation results.

Holds at most one AggregationResult per query key. Writers for the same key
are serialized through a per-key lock; the snapshot itself is swapped in a
single assignment so readers see either the old or the new one.
"""
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, Optional

logger = logging.getLogger(__name__)

DEFAULT_KEY = "default"


@dataclass(frozen=True)
class CacheEntry:
    snapshot: object
    stored_at: float  # time.monotonic() when committed

    def age(self) -> float:
        return time.monotonic() - self.stored_at


class AggregationCache:
    """
    Per-key snapshot store with TTL.

    Args:
        ttl_seconds: Age after which a snapshot is no longer served by get()
    """

    def __init__(self, ttl_seconds: float = 300.0):
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must not be negative")
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[str, CacheEntry] = {}
        self._writer_locks: Dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    def get(self, key: str = DEFAULT_KEY, ttl_seconds: Optional[float] = None):
        """Return the snapshot for key if it is within TTL, else None."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        if entry.age() > ttl:
            logger.debug("Cache entry %s expired (age %.1fs > ttl %.1fs)", key, entry.age(), ttl)
            return None
        return entry.snapshot

    def peek(self, key: str = DEFAULT_KEY):
        """Return the snapshot for key regardless of age."""
        entry = self._entries.get(key)
        return entry.snapshot if entry else None

    def age(self, key: str = DEFAULT_KEY) -> Optional[float]:
        entry = self._entries.get(key)
        return entry.age() if entry else None

    def put(self, snapshot, key: str = DEFAULT_KEY) -> None:
        """Commit a snapshot. Callers hold writer(key) when racing other writers."""
        if snapshot is None:
            raise ValueError("Refusing to cache an empty snapshot")
        self._entries[key] = CacheEntry(snapshot=snapshot, stored_at=time.monotonic())
        logger.debug("Cache entry %s replaced", key)

    def invalidate(self, key: str = DEFAULT_KEY) -> None:
        self._entries.pop(key, None)

    @contextmanager
    def writer(self, key: str = DEFAULT_KEY) -> Iterator[None]:
        """Hold the single-writer lock for key."""
        with self._lock:
            lock = self._writer_locks.setdefault(key, threading.Lock())
        with lock:
            yield

    def __contains__(self, key: str) -> bool:
        return key in self._entries
