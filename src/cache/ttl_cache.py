"""
Generic in-process TTL cache.

Entries carry an absolute expiry. Reads treat expired entries as
missing; a daemon sweeper thread evicts them on a fixed interval that
is independent of any entry's TTL. The map is guarded by a
reader/writer lock so concurrent readers never block each other.

Never used for canonical Event or Source storage.
"""

import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import Enum
from typing import Generic, TypeVar

from src.cache.config import CacheConfig

logger = logging.getLogger(__name__)

V = TypeVar("V")


class CachePriority(str, Enum):
    """Coarse TTL tiers: refresh hot entries sooner."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def ttl_for(priority: CachePriority, config: CacheConfig | None = None) -> float:
    config = config or CacheConfig()
    return {
        CachePriority.HIGH: config.high_ttl_seconds,
        CachePriority.MEDIUM: config.medium_ttl_seconds,
        CachePriority.LOW: config.low_ttl_seconds,
    }[priority]


class ReadWriteLock:
    """Many readers or one writer. Waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class TTLCache(Generic[V]):
    """
    Key/value store with per-entry absolute expiration.

    Usage:
        cache: TTLCache[dict] = TTLCache()
        cache.start()
        cache.set("channel:youtube:UC123", details, ttl=3600)
        cache.get("channel:youtube:UC123")
        cache.close()
    """

    def __init__(
        self,
        sweep_interval: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            sweep_interval: Seconds between background sweeps (CACHE_SWEEP_INTERVAL_SECONDS)
            clock: Monotonic time source
        """
        self._sweep_interval = sweep_interval or CacheConfig().sweep_interval_seconds
        self._clock = clock
        self._store: dict[str, tuple[V, float]] = {}
        self._lock = ReadWriteLock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def get(self, key: str) -> V | None:
        with self._lock.read():
            entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            return None
        return value

    def set(self, key: str, value: V, ttl: float) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        with self._lock.write():
            self._store[key] = (value, self._clock() + ttl)

    def delete(self, key: str) -> bool:
        with self._lock.write():
            return self._store.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock.write():
            self._store.clear()

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._store)

    def sweep(self) -> int:
        """Evict expired entries now. Returns the number evicted."""
        now = self._clock()
        with self._lock.write():
            expired = [k for k, (_, expires_at) in self._store.items() if now >= expires_at]
            for key in expired:
                del self._store[key]
        if expired:
            logger.debug(f"Cache sweep evicted {len(expired)} entries")
        return len(expired)

    def start(self) -> None:
        """Start the background sweeper (idempotent)."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._sweep_loop, name="ttl-cache-sweeper", daemon=True)
        self._thread.start()

    def close(self) -> None:
        """Stop the sweeper and wait for it to exit."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self._sweep_interval):
            self.sweep()
